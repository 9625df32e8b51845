"""Dataclass-based configuration schema for pckaudio."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal


DEFAULT_TOOLS_DIR = Path(".pckaudio/libs")
DEFAULT_SCRATCH_ROOT = Path(".pckaudio/processing")


@dataclass(slots=True)
class ToolsConfig:
    """Location of the external tool set.

    Bare names are resolved inside `tools_dir`; absolute paths are used as is.
    """

    tools_dir: Path = DEFAULT_TOOLS_DIR
    bundle: Path | None = None
    unpacker: str = "quickbms"
    unpack_script: str = "wavescan.bms"
    decoder: str = "vgmstream-cli"
    encoder: str = "ffmpeg"


@dataclass(slots=True)
class EncoderConfig:
    """Codec settings for the transcoded target formats."""

    mp3_bitrate: str = "320k"
    ogg_codec: str = "libvorbis"
    ogg_quality: int = 10
    flac_sample_format: Literal["s16", "s32"] = "s16"
    flac_sample_rate: int = 44100


@dataclass(slots=True)
class ExportConfig:
    """Top-level export configuration."""

    tools: ToolsConfig = field(default_factory=ToolsConfig)
    encoder: EncoderConfig = field(default_factory=EncoderConfig)
    scratch_root: Path = DEFAULT_SCRATCH_ROOT
    log_level: str = "INFO"
