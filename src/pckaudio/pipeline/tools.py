"""External tool set and the per-item transforms built on it."""

from __future__ import annotations

from dataclasses import dataclass
import os
from pathlib import Path

from pckaudio.config.schema import EncoderConfig, ToolsConfig
from pckaudio.pipeline.errors import StageItemError, ToolExecutionError
from pckaudio.pipeline.run import AudioFormat
from pckaudio.pipeline.runner import ProcessRunner
from pckaudio.storage.atomic import atomic_copy


def _resolve(tools_dir: Path, name: str, *, executable: bool) -> Path:
    candidate = Path(name).expanduser()
    if candidate.is_absolute():
        return candidate
    if executable and os.name == "nt" and not candidate.suffix:
        candidate = candidate.with_suffix(".exe")
    return tools_dir / candidate


@dataclass(frozen=True, slots=True)
class ExternalToolSet:
    """Resolved locations of the bundled executables and unpack script."""

    tools_dir: Path
    unpacker: Path
    unpack_script: Path
    decoder: Path
    encoder: Path

    @classmethod
    def from_config(cls, config: ToolsConfig) -> "ExternalToolSet":
        tools_dir = config.tools_dir.expanduser().absolute()
        return cls(
            tools_dir=tools_dir,
            unpacker=_resolve(tools_dir, config.unpacker, executable=True),
            unpack_script=_resolve(tools_dir, config.unpack_script, executable=False),
            decoder=_resolve(tools_dir, config.decoder, executable=True),
            encoder=_resolve(tools_dir, config.encoder, executable=True),
        )

    def executables(self) -> tuple[Path, Path, Path]:
        return (self.unpacker, self.decoder, self.encoder)


def encoder_flags(fmt: AudioFormat, config: EncoderConfig) -> list[str]:
    """Return codec-specific ffmpeg flags for a transcoded target format."""

    if fmt is AudioFormat.MP3:
        return ["-b:a", config.mp3_bitrate]
    if fmt is AudioFormat.OGG:
        return ["-acodec", config.ogg_codec, "-qscale:a", str(config.ogg_quality)]
    if fmt is AudioFormat.FLAC:
        return ["-af", f"aformat={config.flac_sample_format}:{config.flac_sample_rate}"]
    raise ValueError(f"{fmt.value} is copied, not transcoded")


def _check_exit(tool: Path, returncode: int, item: Path) -> None:
    if returncode != 0:
        raise ToolExecutionError(tool.stem, returncode, item)


def _copy_output(src: Path, dst: Path) -> None:
    try:
        atomic_copy(src, dst)
    except OSError as exc:
        raise StageItemError(f"Could not copy {src.name} to {dst.parent}: {exc}") from exc


class UnpackTransform:
    """Extract the intermediate entries of one container.

    Entries are named by the container itself, so the only path known up
    front is the folder they land in; that folder is the item's output.
    """

    def __init__(self, runner: ProcessRunner, tools: ExternalToolSet) -> None:
        self.runner = runner
        self.tools = tools

    def __call__(self, item: Path, target: Path) -> Path:
        output_dir = target.parent
        returncode = self.runner.run(
            self.tools.unpacker,
            [self.tools.unpack_script, item, output_dir],
        )
        _check_exit(self.tools.unpacker, returncode, item)
        return output_dir


class DecodeTransform:
    """Decode one intermediate file into uncompressed PCM at `target`."""

    def __init__(self, runner: ProcessRunner, tools: ExternalToolSet) -> None:
        self.runner = runner
        self.tools = tools

    def __call__(self, item: Path, target: Path) -> Path:
        returncode = self.runner.run(self.tools.decoder, ["-o", target, item])
        _check_exit(self.tools.decoder, returncode, item)
        if not target.is_file():
            raise StageItemError(f"{self.tools.decoder.stem} produced no output for {item.name}")
        return target


class EncodeTransform:
    """Produce `target` (`<output>/<fmt>/<stem>.<fmt>`) from one decoded file.

    Non-wav formats are transcoded into `work_dir` first; the result (or the
    decoded file itself for wav) is then copied to `target`.
    """

    def __init__(
        self,
        runner: ProcessRunner,
        tools: ExternalToolSet,
        fmt: AudioFormat,
        encoder: EncoderConfig,
        work_dir: Path,
    ) -> None:
        self.runner = runner
        self.tools = tools
        self.fmt = fmt
        self.encoder = encoder
        self.work_dir = work_dir

    def __call__(self, item: Path, target: Path) -> Path:
        processed = item
        if self.fmt is not AudioFormat.WAV:
            processed = self.work_dir / target.name
            arguments: list[Path | str] = ["-i", item, "-y"]
            arguments.extend(encoder_flags(self.fmt, self.encoder))
            arguments.append(processed)
            returncode = self.runner.run(self.tools.encoder, arguments)
            _check_exit(self.tools.encoder, returncode, item)
            if not processed.is_file():
                raise StageItemError(f"{self.tools.encoder.stem} produced no output for {item.name}")

        _copy_output(processed, target)
        return target
