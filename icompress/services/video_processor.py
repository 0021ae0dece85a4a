import math
import re
import subprocess
import threading
import time
from pathlib import Path
from typing import Callable, Iterator, Protocol

import structlog

from icompress.core.config import Settings, settings as default_settings
from icompress.core.errors import TransformCancelled, TransformError
from icompress.models import Action, ProcessedAsset, TransformSpec, UploadedAsset
from icompress.models.asset import new_asset_id, processed_key

logger = structlog.get_logger()

ProgressSink = Callable[[float], None]

COMPRESS_VIDEO_BITRATE = "1000k"
COMPRESS_CRF = "28"
VIDEO_CODEC = "libx264"
AUDIO_CODEC = "aac"

_DURATION_RE = re.compile(r"Duration:\s*(\d+):(\d+):(\d+(?:\.\d+)?)")
_OUTPUT_TAIL_LINES = 200
_ERROR_TAIL_LINES = 40
_WATCH_INTERVAL = 0.1
_TERMINATE_GRACE_SECONDS = 5


class EngineProcess(Protocol):
    """A running media engine invocation."""

    def lines(self) -> Iterator[str]: ...

    def poll(self) -> int | None: ...

    def wait(self, timeout: float | None = None) -> int: ...

    def terminate(self) -> None: ...

    def kill(self) -> None: ...


class MediaEngine(Protocol):
    def start(self, args: list[str]) -> EngineProcess: ...


class FFmpegProcess:
    def __init__(self, popen: subprocess.Popen) -> None:
        self._popen = popen

    @property
    def pid(self) -> int:
        return self._popen.pid

    def lines(self) -> Iterator[str]:
        if self._popen.stdout is None:
            raise TransformError("FFmpeg did not provide a stdout stream")
        for line in self._popen.stdout:
            yield line.rstrip("\r\n")

    def poll(self) -> int | None:
        return self._popen.poll()

    def wait(self, timeout: float | None = None) -> int:
        return self._popen.wait(timeout=timeout)

    def terminate(self) -> None:
        self._popen.terminate()

    def kill(self) -> None:
        self._popen.kill()


class FFmpegEngine:
    """Starts the ffmpeg binary with stderr folded into the stdout pipe."""

    def __init__(self, binary: str = "ffmpeg") -> None:
        self.binary = binary

    def start(self, args: list[str]) -> FFmpegProcess:
        try:
            popen = subprocess.Popen(
                [self.binary, *args],
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                encoding="utf-8",
                errors="replace",
                bufsize=1,
            )
        except OSError as e:
            raise TransformError(f"Failed to start FFmpeg: {e}") from e
        return FFmpegProcess(popen)


def format_seconds(value: float) -> str:
    text = f"{value:.3f}".rstrip("0").rstrip(".")
    return text or "0"


def build_command(input_path: str, output_path: str, spec: TransformSpec) -> list[str]:
    """
    Build the ffmpeg argument list for a transform.

    compress: ffmpeg -y -i {in} -c:v libx264 -b:v 1000k -crf 28 -c:a aac {out}
    convert:  ffmpeg -y -i {in} -c:v libx264 -c:a aac -f mp4 {out}
    trim:     ffmpeg -y -i {in} -ss {start} -t {duration} -c:v libx264 -c:a aac {out}
    """
    args = ["-y", "-hide_banner", "-i", input_path]

    if spec.action == Action.COMPRESS:
        args += ["-c:v", VIDEO_CODEC, "-b:v", COMPRESS_VIDEO_BITRATE, "-crf", COMPRESS_CRF, "-c:a", AUDIO_CODEC]
    elif spec.action == Action.CONVERT:
        args += ["-c:v", VIDEO_CODEC, "-c:a", AUDIO_CODEC, "-f", "mp4"]
    elif spec.action == Action.TRIM:
        args += [
            "-ss", format_seconds(spec.start),
            "-t", format_seconds(spec.duration),
            "-c:v", VIDEO_CODEC, "-c:a", AUDIO_CODEC,
        ]

    args += ["-progress", "pipe:1", "-nostats", output_path]
    return args


class ProgressParser:
    """Turns ffmpeg banner and -progress lines into percentages."""

    def __init__(self, spec: TransformSpec) -> None:
        self.spec = spec
        self.total_seconds: float | None = None
        self.last: int | None = None

    def _set_total(self, input_seconds: float) -> None:
        total = input_seconds
        if self.spec.action == Action.TRIM:
            total = min(self.spec.duration, max(input_seconds - self.spec.start, 0.0))
        self.total_seconds = total if total > 0 else None

    def feed(self, line: str) -> int | None:
        """Return a new percentage when the line advances progress, else None."""
        line = line.strip()

        if self.total_seconds is None and line.startswith("Duration:"):
            match = _DURATION_RE.search(line)
            if match:
                h, m, s = match.groups()
                self._set_total(int(h) * 3600 + int(m) * 60 + float(s))
            return None

        if line == "progress=end":
            if self.last is not None and self.last >= 100:
                return None
            self.last = 100
            return 100

        if not line.startswith(("out_time_us=", "out_time_ms=")) or not self.total_seconds:
            return None

        try:
            # ffmpeg reports both keys in microseconds
            elapsed = int(line.split("=", 1)[1]) / 1_000_000
        except ValueError:
            return None

        pct = min(max(math.floor(elapsed / self.total_seconds * 100), 0), 100)
        if self.last is not None and pct <= self.last:
            return None
        self.last = pct
        return pct


class VideoProcessor:
    """Runs a TransformSpec through the media engine."""

    def __init__(self, engine: MediaEngine | None = None, settings: Settings | None = None) -> None:
        self.settings = settings or default_settings
        self.engine = engine or FFmpegEngine(self.settings.ffmpeg_binary)

    def new_output(self) -> ProcessedAsset:
        processed_dir = Path(self.settings.processed_dir)
        processed_dir.mkdir(parents=True, exist_ok=True)
        asset_id = new_asset_id()
        return ProcessedAsset(id=asset_id, path=str(processed_dir / processed_key(asset_id)))

    def transform(
        self,
        asset: UploadedAsset,
        spec: TransformSpec,
        progress_sink: ProgressSink | None = None,
        cancel: threading.Event | None = None,
        output: ProcessedAsset | None = None,
    ) -> ProcessedAsset:
        output = output or self.new_output()
        args = build_command(asset.path, output.path, spec)
        timeout = self.settings.ffmpeg_timeout_seconds

        logger.info("ffmpeg_started", asset_id=asset.id, action=spec.action.value, output=output.path)
        process = self.engine.start(args)

        parser = ProgressParser(spec)
        output_tail: list[str] = []
        finished = threading.Event()
        stop_reason: str | None = None

        def _watch() -> None:
            nonlocal stop_reason
            deadline = time.monotonic() + timeout
            while not finished.wait(_WATCH_INTERVAL):
                if cancel is not None and cancel.is_set():
                    stop_reason = "cancelled"
                elif time.monotonic() >= deadline:
                    stop_reason = "timeout"
                else:
                    continue
                logger.warning("ffmpeg_stopping", asset_id=asset.id, reason=stop_reason)
                process.terminate()
                return

        watcher = threading.Thread(target=_watch, name=f"ffmpeg-watch-{asset.id}", daemon=True)
        watcher.start()

        try:
            try:
                for line in process.lines():
                    if line:
                        output_tail.append(line)
                        if len(output_tail) > _OUTPUT_TAIL_LINES:
                            output_tail = output_tail[-_OUTPUT_TAIL_LINES:]

                    pct = parser.feed(line)
                    if pct is not None and progress_sink is not None:
                        self._emit(progress_sink, pct, asset.id)
            except (OSError, UnicodeDecodeError) as e:
                raise TransformError(f"FFmpeg stream error: {e}") from e

            returncode = process.wait()
        finally:
            finished.set()
            watcher.join()
            self._reap(process)

        if stop_reason == "cancelled":
            raise TransformCancelled("FFmpeg cancelled")
        if stop_reason == "timeout":
            raise TransformError(f"FFmpeg timeout after {timeout}s")

        if returncode != 0:
            tail_text = "\n".join(output_tail[-_ERROR_TAIL_LINES:])
            logger.error("ffmpeg_failed", asset_id=asset.id, returncode=returncode, stderr=tail_text[:500])
            raise TransformError(f"FFmpeg failed (code {returncode}):\n{tail_text}")

        logger.info("ffmpeg_completed", asset_id=asset.id, output=output.path)
        return output

    @staticmethod
    def _emit(progress_sink: ProgressSink, pct: int, asset_id: str) -> None:
        try:
            progress_sink(pct)
        except Exception as e:
            logger.warning("progress_sink_failed", asset_id=asset_id, error=str(e))

    @staticmethod
    def _reap(process: EngineProcess) -> None:
        if process.poll() is None:
            process.terminate()
        try:
            process.wait(timeout=_TERMINATE_GRACE_SECONDS)
        except subprocess.TimeoutExpired:
            process.kill()
            process.wait()
