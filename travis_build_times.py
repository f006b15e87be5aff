#!/usr/bin/env python3
# travis_build_times: Terminal dashboard charting Travis CI build durations
#
# Hotkeys
#   Tab / Shift+Tab  switch between the repository and token fields
#   Backspace        delete the last character of the focused field
#   Ctrl+U           clear the focused field
#   Ctrl+C / Ctrl+Q  quit (the current view link is printed on exit)
#
# Config highlights (all keys optional)
#     repository: cozy/cozy-contacts
#     api_url: https://api.travis-ci.com
#     branch: master
#     limit: 100
#     debounce_ms: 500
#     timeout: 30
#
# Notes
# - Only passed builds of push events on the configured branch are charted.
# - Editing the repository rewrites the view link; the token never lands in it.
# - A view link is a URL or bare query string: "?repository=owner/name&travis-token=..."
#
# Environment
# - TRAVIS_TOKEN (or a TRAVIS_TOKEN line in ./.env)

from __future__ import annotations

import argparse
import asyncio
import datetime as dt
import enum
import math
import os
import sys
import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple
from urllib.parse import parse_qsl, quote, urlencode, urlsplit, urlunsplit

import requests
import yaml
from prompt_toolkit import Application
from prompt_toolkit.application.current import get_app
from prompt_toolkit.key_binding import KeyBindings
from prompt_toolkit.keys import Keys
from prompt_toolkit.layout import HSplit, Layout, Window
from prompt_toolkit.layout.controls import FormattedTextControl
from prompt_toolkit.layout.dimension import Dimension
from prompt_toolkit.styles import Style
import logging
from logging.handlers import RotatingFileHandler


DEFAULT_REPOSITORY = "cozy/cozy-contacts"
DEFAULT_API_URL = "https://api.travis-ci.com"
TRAVIS_API_VERSION = "3"
REPOSITORY_PARAM = "repository"
TOKEN_PARAM = "travis-token"
CHART_LABEL = "Build duration (minutes)"
FAILED_MESSAGE = "Failed to fetch build times"
LOADING_MESSAGE = "Waiting..."
LOG_PATH = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'travis_build_times.log')

logger = logging.getLogger('travis_build_times')


# -----------------------------
# Config models
# -----------------------------
@dataclass
class Config:
    repository: str = DEFAULT_REPOSITORY
    api_url: str = DEFAULT_API_URL
    branch: str = "master"
    limit: int = 100
    debounce_ms: int = 500
    timeout: float = 30.0


def _coerce(raw: dict, key: str, default, kind):
    value = raw.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise ValueError(f"Config: '{key}' must be a number, got {value!r}.")
    try:
        return kind(value)
    except ValueError:
        raise ValueError(f"Config: '{key}' must be a number, got {value!r}.") from None


def load_config(path: str) -> Config:
    with open(path, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f)
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ValueError("Config: expected a mapping at the top level.")
    base = Config()
    limit = _coerce(raw, "limit", base.limit, int)
    if limit <= 0:
        raise ValueError(f"Config: 'limit' must be positive, got {limit}.")
    debounce_ms = _coerce(raw, "debounce_ms", base.debounce_ms, int)
    if debounce_ms < 0:
        raise ValueError(f"Config: 'debounce_ms' cannot be negative, got {debounce_ms}.")
    timeout = _coerce(raw, "timeout", base.timeout, float)
    if timeout <= 0:
        raise ValueError(f"Config: 'timeout' must be positive, got {timeout}.")
    return Config(
        repository=str(raw.get("repository", base.repository) or ""),
        api_url=str(raw.get("api_url") or base.api_url),
        branch=str(raw.get("branch") or base.branch),
        limit=limit,
        debounce_ms=debounce_ms,
        timeout=timeout,
    )


def setup_logging(log_level: str = 'ERROR', log_path: Optional[str] = None) -> logging.Logger:
    """File logger for diagnostics; the handler level follows --log-level."""
    # Always reset handlers so CLI --log-level reliably controls file output.
    for h in list(logger.handlers):
        logger.removeHandler(h)
        h.close()
    logger.setLevel(logging.DEBUG)
    fh = RotatingFileHandler(log_path or LOG_PATH, maxBytes=2000000, backupCount=2, encoding='utf-8')
    lvl = getattr(logging, str(log_level).upper(), None)
    if not isinstance(lvl, int):
        lvl = logging.ERROR
    fh.setLevel(lvl)
    fh.setFormatter(logging.Formatter('%(asctime)s %(levelname)s %(message)s'))
    logger.addHandler(fh)
    return logger


# -----------------------------
# Data model
# -----------------------------
class FetchStatus(enum.Enum):
    IDLE = "idle"
    LOADING = "loading"
    LOADED = "loaded"
    FAILED = "failed"


@dataclass(frozen=True)
class BuildSample:
    date: str          # ISO-8601, UTC, millisecond precision
    duration: float    # minutes


@dataclass(frozen=True)
class Credentials:
    repository_slug: str
    travis_token: str

    @property
    def complete(self) -> bool:
        return bool(self.repository_slug) and bool(self.travis_token)


class BuildFetchError(RuntimeError):
    """Raised when the builds endpoint answers with a non-success status."""

    def __init__(self, status_code: int, body: str = ""):
        super().__init__(f"HTTP error! Status: {status_code}")
        self.status_code = status_code
        self.body = body


# -----------------------------
# Travis API
# -----------------------------
def _session(token: str) -> requests.Session:
    s = requests.Session()
    s.headers["Travis-API-Version"] = TRAVIS_API_VERSION
    s.headers["Authorization"] = f"token {token}"
    return s


def builds_url(repository_slug: str, api_url: str = DEFAULT_API_URL) -> str:
    return f"{api_url.rstrip('/')}/repo/{quote(repository_slug, safe='')}/builds"


def build_query(cfg: Config) -> Dict[str, object]:
    return {
        "state": "passed",
        "event_type": "push",
        "limit": cfg.limit,
        "branch.name": cfg.branch,
    }


def _parse_timestamp(value: object) -> dt.datetime:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Invalid build timestamp: {value!r}")
    raw = value.strip()
    if raw.endswith(("Z", "z")):
        raw = raw[:-1] + "+00:00"
    parsed = dt.datetime.fromisoformat(raw)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=dt.timezone.utc)
    return parsed.astimezone(dt.timezone.utc)


def _iso_utc(moment: dt.datetime) -> str:
    moment = moment.astimezone(dt.timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def samples_from_payload(payload: object) -> List[BuildSample]:
    """Map a builds response body to samples sorted by start time.

    A missing or null ``builds`` key means no builds. Records without a usable
    ``started_at`` or numeric ``duration`` raise ``ValueError``.
    """
    if not isinstance(payload, dict):
        raise ValueError(f"Unexpected response body: {type(payload).__name__}")
    builds = payload.get("builds") or []
    if not isinstance(builds, list):
        raise ValueError("Unexpected 'builds' value in response body")
    keyed: List[Tuple[dt.datetime, BuildSample]] = []
    for build in builds:
        if not isinstance(build, dict):
            raise ValueError(f"Unexpected build record: {build!r}")
        started = _parse_timestamp(build.get("started_at"))
        duration = build.get("duration")
        if isinstance(duration, bool) or not isinstance(duration, (int, float)):
            raise ValueError(f"Invalid build duration: {duration!r}")
        keyed.append((started, BuildSample(date=_iso_utc(started), duration=duration / 60)))
    keyed.sort(key=lambda item: item[0])
    return [sample for _, sample in keyed]


def fetch_build_samples(token: str, repository_slug: str, cfg: Optional[Config] = None) -> List[BuildSample]:
    """One GET against the builds endpoint; no retries and no caching."""
    if not token or not repository_slug:
        raise ValueError("Repository slug and Travis token are both required")
    cfg = cfg or Config()
    session = _session(token)
    url = builds_url(repository_slug, cfg.api_url)
    logger.debug("GET %s (limit=%s branch=%s)", url, cfg.limit, cfg.branch)
    resp = session.get(url, params=build_query(cfg), timeout=cfg.timeout)
    if resp.status_code >= 300:
        raise BuildFetchError(resp.status_code, (resp.text or "")[:200])
    return samples_from_payload(resp.json())


# -----------------------------
# Debounce
# -----------------------------
class Debouncer:
    """Emit a value once it has stayed unchanged for ``delay_ms``.

    Every push restarts the window; only the latest value is ever emitted.
    Pushing with ``ignore=True`` drops the pending emission and keeps the last
    emitted value. ``call_later`` defaults to the running asyncio loop's.
    """

    def __init__(self, delay_ms: int, on_settle: Callable[[str], None], call_later=None):
        self.delay_ms = max(0, int(delay_ms))
        self.value: Optional[str] = None
        self._on_settle = on_settle
        self._call_later = call_later
        self._handle = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def push(self, value: str, ignore: bool = False) -> None:
        self.cancel()
        if ignore:
            return
        self._handle = self._schedule(self.delay_ms / 1000.0, lambda: self._fire(value))

    def settle(self, value: str) -> None:
        """Set the emitted value immediately without notifying."""
        self.cancel()
        self.value = value

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _schedule(self, delay: float, callback: Callable[[], None]):
        if self._call_later is not None:
            return self._call_later(delay, callback)
        return asyncio.get_running_loop().call_later(delay, callback)

    def _fire(self, value: str) -> None:
        self._handle = None
        self.value = value
        self._on_settle(value)


# -----------------------------
# View link
# -----------------------------
@dataclass
class ViewLocation:
    """A shareable link whose query carries the dashboard inputs."""

    base: str = ""
    params: List[Tuple[str, str]] = field(default_factory=list)
    fragment: str = ""

    @classmethod
    def parse(cls, link: Optional[str]) -> "ViewLocation":
        link = (link or "").strip()
        if not link:
            return cls()
        parts = urlsplit(link)
        # "repository=a/b&x=y" with no '?' is a bare query string
        if not parts.scheme and not parts.netloc and not parts.query and "=" in parts.path:
            return cls(params=parse_qsl(parts.path, keep_blank_values=True), fragment=parts.fragment)
        base = urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))
        return cls(base=base, params=parse_qsl(parts.query, keep_blank_values=True), fragment=parts.fragment)

    def has(self, name: str) -> bool:
        return any(k == name for k, _ in self.params)

    def get(self, name: str, default: Optional[str] = None) -> Optional[str]:
        for k, v in self.params:
            if k == name:
                return v
        return default

    def with_param(self, name: str, value: str) -> "ViewLocation":
        """Replace ``name`` in place (appending when absent); other params keep their order."""
        params: List[Tuple[str, str]] = []
        replaced = False
        for k, v in self.params:
            if k != name:
                params.append((k, v))
            elif not replaced:
                params.append((k, value))
                replaced = True
        if not replaced:
            params.append((name, value))
        return ViewLocation(base=self.base, params=params, fragment=self.fragment)

    def to_link(self) -> str:
        link = f"{self.base}?{urlencode(self.params)}"
        if self.fragment:
            link += f"#{self.fragment}"
        return link


# -----------------------------
# Controller
# -----------------------------
def _run_in_daemon_thread(fn: Callable, *args) -> asyncio.Future:
    """Run ``fn`` on a daemon thread; the returned future resolves on the running loop."""
    loop = asyncio.get_running_loop()
    fut = loop.create_future()

    def _resolve(result, error) -> None:
        if fut.done():
            return
        if error is not None:
            fut.set_exception(error)
        else:
            fut.set_result(result)

    def _work() -> None:
        result, error = None, None
        try:
            result = fn(*args)
        except Exception as exc:
            error = exc
        try:
            loop.call_soon_threadsafe(_resolve, result, error)
        except RuntimeError:
            logger.debug("fetch finished after the event loop closed")

    threading.Thread(target=_work, name='travis-fetch', daemon=True).start()
    return fut


class BuildTimesController:
    """Input fields, fetch status and samples for one dashboard session."""

    def __init__(
        self,
        cfg: Config,
        travis_token: str = "",
        location: Optional[ViewLocation] = None,
        fetcher: Optional[Callable[[Credentials], List[BuildSample]]] = None,
        call_later=None,
        spawn: Optional[Callable] = None,
        on_change: Optional[Callable[[], None]] = None,
    ):
        self.cfg = cfg
        self.location = location or ViewLocation()
        self.repository = cfg.repository
        self.travis_token = travis_token or ""
        # link parameters override config and environment defaults
        if self.location.has(REPOSITORY_PARAM):
            self.repository = self.location.get(REPOSITORY_PARAM) or ""
        if self.location.has(TOKEN_PARAM):
            self.travis_token = self.location.get(TOKEN_PARAM) or ""
        self.status = FetchStatus.IDLE
        self.samples: List[BuildSample] = []
        self.on_change = on_change
        self._fetcher = fetcher or self._default_fetch
        self._spawn = spawn or asyncio.ensure_future
        self._last_seen: Optional[Credentials] = None
        self.debouncer = Debouncer(cfg.debounce_ms, self._on_repository_settled, call_later=call_later)

    @property
    def debounced_repository(self) -> str:
        return self.debouncer.value or ""

    @property
    def credentials(self) -> Credentials:
        return Credentials(self.repository, self.travis_token)

    def start(self) -> None:
        self.debouncer.settle(self.repository)
        self._maybe_trigger()
        self._notify()

    def set_repository(self, value: str) -> None:
        self.repository = value
        self.location = self.location.with_param(REPOSITORY_PARAM, value)
        self.debouncer.push(value, ignore=value == "")
        self._notify()

    def set_travis_token(self, value: str) -> None:
        self.travis_token = value
        self._maybe_trigger()
        self._notify()

    def _on_repository_settled(self, value: str) -> None:
        logger.debug("repository settled: %r", value)
        self._maybe_trigger()

    def _maybe_trigger(self) -> bool:
        current = Credentials(self.debounced_repository, self.travis_token)
        changed = current != self._last_seen
        self._last_seen = current
        if not changed or not current.complete:
            return False
        self._spawn(self.refresh(current))
        return True

    def _default_fetch(self, credentials: Credentials) -> List[BuildSample]:
        return fetch_build_samples(credentials.travis_token, credentials.repository_slug, self.cfg)

    async def refresh(self, credentials: Credentials) -> None:
        """Fetch, map and store samples; every error ends in FAILED."""
        self.samples = []
        self.status = FetchStatus.LOADING
        self._notify()
        try:
            samples = await _run_in_daemon_thread(self._fetcher, credentials)
        except BuildFetchError as exc:
            logger.warning("Error fetching build information for %s: HTTP %s %s",
                           credentials.repository_slug, exc.status_code, exc.body)
            self.samples = []
            self.status = FetchStatus.FAILED
        except Exception as exc:
            logger.error("Error fetching build information for %s: %s",
                         credentials.repository_slug, exc, exc_info=True)
            self.samples = []
            self.status = FetchStatus.FAILED
        else:
            self.samples = list(samples)
            self.status = FetchStatus.LOADED
            logger.debug("loaded %d builds for %s", len(self.samples), credentials.repository_slug)
        self._notify()

    def _notify(self) -> None:
        if self.on_change is not None:
            self.on_change()


# -----------------------------
# Chart
# -----------------------------
class TimeScale:
    kind = "time"

    def __init__(self, values: List[dt.datetime], options: Dict[str, object]):
        stamps = [v.timestamp() for v in values]
        self.lo = min(stamps)
        self.hi = max(stamps)

    def project(self, value: dt.datetime, size: int) -> int:
        if self.hi <= self.lo:
            return (size - 1) // 2
        return int(round((value.timestamp() - self.lo) / (self.hi - self.lo) * (size - 1)))

    def label_at(self, fraction: float) -> str:
        stamp = self.lo + (self.hi - self.lo) * fraction
        return dt.datetime.fromtimestamp(stamp, dt.timezone.utc).strftime("%Y-%m-%d")


def _nice_ceiling(value: float) -> float:
    if value <= 0:
        return 1.0
    magnitude = 10 ** math.floor(math.log10(value))
    for step in (1, 2, 2.5, 5, 10):
        if step * magnitude >= value:
            return step * magnitude
    return 10 * magnitude


class LinearScale:
    kind = "linear"

    def __init__(self, values: List[float], options: Dict[str, object]):
        low = min(values)
        self.lo = 0.0 if options.get("begin_at_zero") else low
        self.hi = _nice_ceiling(max(values)) if self.lo == 0 else max(values)
        if self.hi <= self.lo:
            self.hi = self.lo + 1.0

    def project(self, value: float, size: int) -> int:
        return int(round((value - self.lo) / (self.hi - self.lo) * (size - 1)))

    def label_at(self, fraction: float) -> str:
        return f"{self.lo + (self.hi - self.lo) * fraction:.1f}"


_CHART_SCALES: Dict[str, type] = {}
_CHART_REGISTERED = False

DEFAULT_CHART_OPTIONS: Dict[str, Dict[str, object]] = {
    "x": {"type": "time"},
    "y": {"type": "linear", "begin_at_zero": True},
}


def register_chart_components() -> None:
    """Register the chart scales once; later calls are no-ops."""
    global _CHART_REGISTERED
    if _CHART_REGISTERED:
        return
    for scale in (TimeScale, LinearScale):
        _CHART_SCALES[scale.kind] = scale
    _CHART_REGISTERED = True


def _draw_segment(grid: List[List[str]], a: Tuple[int, int], b: Tuple[int, int]) -> None:
    (c0, r0), (c1, r1) = a, b
    steps = max(abs(c1 - c0), abs(r1 - r0))
    for i in range(1, steps):
        c = c0 + round((c1 - c0) * i / steps)
        r = r0 + round((r1 - r0) * i / steps)
        if grid[r][c] == " ":
            grid[r][c] = "·"


def render_line_chart(samples: List[BuildSample], width: int = 72, height: int = 16,
                      options: Optional[Dict[str, Dict[str, object]]] = None) -> List[str]:
    """Render samples as text lines: legend, plot with y ticks, x axis, x labels."""
    register_chart_components()
    if not samples:
        return []
    opts = options or DEFAULT_CHART_OPTIONS
    x_opts, y_opts = opts.get("x", {}), opts.get("y", {})
    times = [_parse_timestamp(s.date) for s in samples]
    values = [float(s.duration) for s in samples]
    x_scale = _CHART_SCALES[str(x_opts.get("type", "time"))](times, x_opts)
    y_scale = _CHART_SCALES[str(y_opts.get("type", "linear"))](values, y_opts)

    height = max(3, height)
    tick_rows = {0: y_scale.label_at(0.0), height // 2: y_scale.label_at((height // 2) / (height - 1)),
                 height - 1: y_scale.label_at(1.0)}
    gutter = max(len(label) for label in tick_rows.values())
    plot_w = max(10, width - gutter - 2)

    grid = [[" "] * plot_w for _ in range(height)]
    points = [(x_scale.project(t, plot_w), y_scale.project(v, height)) for t, v in zip(times, values)]
    for a, b in zip(points, points[1:]):
        _draw_segment(grid, a, b)
    for c, r in points:
        grid[r][c] = "●"

    lines = [f"{' ' * (gutter + 2)}── {CHART_LABEL}"]
    for r in reversed(range(height)):
        lines.append(f"{tick_rows.get(r, ''):>{gutter}} │{''.join(grid[r])}")
    lines.append(f"{' ' * gutter} └{'─' * plot_w}")
    left, right = x_scale.label_at(0.0), x_scale.label_at(1.0)
    if left == right:
        x_labels = left.center(plot_w).rstrip()
    else:
        x_labels = left + " " * max(1, plot_w - len(left) - len(right)) + right
    lines.append(f"{' ' * (gutter + 2)}{x_labels}")
    return lines


def summarize_samples(samples: List[BuildSample]) -> str:
    if not samples:
        return "Builds: 0"
    durations = [s.duration for s in samples]
    mean = sum(durations) / len(durations)
    return (f"Builds: {len(durations)}  mean {mean:.1f} min  "
            f"min {min(durations):.1f}  max {max(durations):.1f}")


# -----------------------------
# UI
# -----------------------------
BASE_THEME_STYLE: Dict[str, str] = {
    'title': 'bold #ffd75f',
    'form.label': '#ffd787',
    'form.field': '#f0f0f0 bg:#303030',
    'form.field.focused': 'bold #ffffff bg:#444444',
    'status.loading': '#87d7ff',
    'status.error': 'bold #ff5f5f',
    'status.hint': 'ansigray',
    'chart': '#4bc0c0',
    'footer': '#5fd7af',
}

FIELD_LABELS = {
    'repository': 'Repository slug: ',
    'travis_token': 'Travis token: ',
}


class FormState:
    """Field focus and text editing; every edit goes through the controller."""

    fields = ('repository', 'travis_token')

    def __init__(self, controller: BuildTimesController):
        self.controller = controller
        self.focus = 0

    @property
    def focused(self) -> str:
        return self.fields[self.focus]

    def value(self, name: str) -> str:
        return getattr(self.controller, name)

    def next_field(self, step: int = 1) -> None:
        self.focus = (self.focus + step) % len(self.fields)

    def _set(self, value: str) -> None:
        if self.focused == 'repository':
            self.controller.set_repository(value)
        else:
            self.controller.set_travis_token(value)

    def insert(self, text: str) -> None:
        # unbound special keys arrive as raw escape sequences
        if not text or not text[0].isprintable():
            return
        text = ''.join(ch for ch in text if ch.isprintable())
        if text:
            self._set(self.value(self.focused) + text)

    def backspace(self) -> None:
        current = self.value(self.focused)
        if current:
            self._set(current[:-1])

    def clear(self) -> None:
        if self.value(self.focused):
            self._set('')


def build_form_fragments(form: FormState) -> List[Tuple[str, str]]:
    frags: List[Tuple[str, str]] = []
    for idx, name in enumerate(form.fields):
        value = form.value(name)
        shown = '*' * len(value) if name == 'travis_token' else value
        cls = 'class:form.field.focused' if idx == form.focus else 'class:form.field'
        frags.append(('class:form.label', FIELD_LABELS[name]))
        frags.append((cls, f"{shown} "))
        frags.append(('', '\n'))
    return frags


def build_status_fragments(controller: BuildTimesController) -> List[Tuple[str, str]]:
    if controller.status is FetchStatus.LOADING:
        return [('class:status.loading', LOADING_MESSAGE)]
    if controller.status is FetchStatus.FAILED:
        return [('class:status.error', FAILED_MESSAGE)]
    if controller.status is FetchStatus.IDLE:
        return [('class:status.hint', 'Enter a repository slug and a Travis token')]
    return []


def build_chart_fragments(controller: BuildTimesController, width: int, height: int) -> List[Tuple[str, str]]:
    if controller.status is not FetchStatus.LOADED or not controller.samples:
        return []
    lines = render_line_chart(controller.samples, width=width, height=height)
    return [('class:chart', "\n".join(lines))]


def build_footer_fragments(controller: BuildTimesController) -> List[Tuple[str, str]]:
    frags = [('class:footer', 'Tab switch field · Ctrl+U clear · Ctrl+Q quit')]
    if controller.location.params:
        frags.append(('class:footer', f"   Link: {controller.location.to_link()}"))
    return frags


def build_application(controller: BuildTimesController, form: Optional[FormState] = None,
                      input=None, output=None) -> Application:
    form = form or FormState(controller)

    def chart_text():
        try:
            size = get_app().output.get_size()
            cols, rows = size.columns, size.rows
        except Exception:
            cols, rows = 100, 30
        return build_chart_fragments(controller, width=max(30, cols - 2), height=max(5, rows - 10))

    kb = KeyBindings()

    @kb.add('tab')
    def _(event):
        form.next_field()

    @kb.add('s-tab')
    def _(event):
        form.next_field(-1)

    @kb.add('backspace')
    def _(event):
        form.backspace()

    @kb.add('c-u')
    def _(event):
        form.clear()

    @kb.add('c-c')
    @kb.add('c-q')
    def _(event):
        event.app.exit()

    @kb.add('left')
    @kb.add('right')
    @kb.add('up')
    @kb.add('down')
    @kb.add('home')
    @kb.add('end')
    @kb.add('delete')
    def _(event):
        pass

    @kb.add(Keys.Any)
    @kb.add(Keys.BracketedPaste)
    def _(event):
        form.insert(event.data)

    container = HSplit([
        Window(FormattedTextControl([('class:title', 'Travis Build Times')]), height=1),
        Window(height=1),
        Window(FormattedTextControl(lambda: build_form_fragments(form)), height=2),
        Window(FormattedTextControl(lambda: build_status_fragments(controller)), height=1),
        Window(FormattedTextControl(chart_text), height=Dimension(min=1), wrap_lines=False),
        Window(FormattedTextControl(lambda: build_footer_fragments(controller)), height=1),
    ])
    app = Application(
        layout=Layout(container),
        key_bindings=kb,
        full_screen=True,
        style=Style.from_dict(BASE_THEME_STYLE),
        input=input,
        output=output,
    )
    controller.on_change = app.invalidate
    return app


def run_ui(controller: BuildTimesController) -> str:
    """Run the dashboard until quit; return the final view link."""
    app = build_application(controller)
    app.run(pre_run=controller.start)
    controller.debouncer.cancel()
    return controller.location.to_link() if controller.location.params else ""


def run_once(cfg: Config, token: str, location: ViewLocation, width: int = 72, height: int = 16) -> int:
    """Fetch once and print the chart; returns the process exit status."""
    controller = BuildTimesController(cfg, travis_token=token, location=location)
    creds = controller.credentials
    if not creds.complete:
        print("Repository slug and Travis token are required (use --link or TRAVIS_TOKEN).", file=sys.stderr)
        return 2
    asyncio.run(controller.refresh(creds))
    if controller.status is FetchStatus.FAILED:
        print(FAILED_MESSAGE, file=sys.stderr)
        return 1
    print(f"Travis Build Times: {creds.repository_slug}")
    if not controller.samples:
        print("No passed builds found.")
        return 0
    for line in render_line_chart(controller.samples, width=width, height=height):
        print(line)
    print(summarize_samples(controller.samples))
    return 0


# -----------------------------
# Utilities
# -----------------------------
def load_dotenv_token(path: str = ".env") -> Optional[str]:
    """TRAVIS_TOKEN from a .env file in the working directory, if any."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            lines = f.read().splitlines()
    except FileNotFoundError:
        return None
    except OSError:
        logger.warning("Unable to read %s", path, exc_info=True)
        return None
    for line in lines:
        key, sep, value = line.partition("=")
        if sep and key.strip() == "TRAVIS_TOKEN":
            return value.strip().strip("'\"") or None
    return None


# -----------------------------
# CLI
# -----------------------------
def main(argv: Optional[List[str]] = None) -> None:
    ap = argparse.ArgumentParser(description="Travis CI build duration dashboard")
    ap.add_argument("--config", help="Path to YAML config")
    ap.add_argument("--link", help="View link (URL or ?query) with repository / travis-token parameters")
    ap.add_argument("--no-ui", action="store_true", help="Fetch once, print the chart and exit")
    ap.add_argument("--width", type=int, default=72, help="Chart width for --no-ui (default 72)")
    ap.add_argument("--height", type=int, default=16, help="Chart height for --no-ui (default 16)")
    ap.add_argument("--log-level", default="ERROR", help="File log level (DEBUG, INFO, WARNING, ERROR)")
    args = ap.parse_args(argv)

    setup_logging(args.log_level)
    cfg = Config()
    if args.config:
        try:
            cfg = load_config(args.config)
        except (OSError, ValueError, yaml.YAMLError) as e:
            print(f"Failed to load config: {e}", file=sys.stderr)
            sys.exit(2)
    # Token precedence: env var, ./.env TRAVIS_TOKEN; a link parameter overrides both
    token = os.environ.get("TRAVIS_TOKEN") or load_dotenv_token() or ""
    location = ViewLocation.parse(args.link)

    register_chart_components()

    if args.no_ui:
        sys.exit(run_once(cfg, token, location, width=args.width, height=args.height))

    controller = BuildTimesController(cfg, travis_token=token, location=location)
    link = run_ui(controller)
    if link:
        print(f"View link: {link}")


if __name__ == "__main__":
    main()
