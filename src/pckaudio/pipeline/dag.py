"""Fixed stage sequence of an export run."""

from __future__ import annotations

from pathlib import Path

from pckaudio.config.schema import EncoderConfig
from pckaudio.pipeline.run import AudioFormat
from pckaudio.pipeline.runner import ProcessRunner
from pckaudio.pipeline.stage import StageDefinition
from pckaudio.pipeline.tools import (
    DecodeTransform,
    EncodeTransform,
    ExternalToolSet,
    UnpackTransform,
)
from pckaudio.storage.scratch import ScratchArea


UNPACK_STAGE = "unpack"
DECODE_STAGE = "decode"


def encode_stage_name(fmt: AudioFormat) -> str:
    return f"encode:{fmt.value}"


def unpack_stage(runner: ProcessRunner, tools: ExternalToolSet, scratch: ScratchArea) -> StageDefinition:
    """Container -> intermediate files."""

    return StageDefinition(
        name=UNPACK_STAGE,
        output_dir=scratch.intermediate,
        output_suffix=".wem",
        transform=UnpackTransform(runner, tools),
    )


def decode_stage(runner: ProcessRunner, tools: ExternalToolSet, scratch: ScratchArea) -> StageDefinition:
    """Intermediate files -> decoded PCM."""

    return StageDefinition(
        name=DECODE_STAGE,
        output_dir=scratch.decoded,
        output_suffix=".wav",
        transform=DecodeTransform(runner, tools),
    )


def encode_stage(
    runner: ProcessRunner,
    tools: ExternalToolSet,
    scratch: ScratchArea,
    fmt: AudioFormat,
    encoder: EncoderConfig,
    output_dir: Path,
) -> StageDefinition:
    """Decoded PCM -> `<output_dir>/<fmt>/<stem>.<fmt>`."""

    destination = output_dir / fmt.value
    return StageDefinition(
        name=encode_stage_name(fmt),
        output_dir=destination,
        output_suffix=f".{fmt.value}",
        transform=EncodeTransform(
            runner,
            tools,
            fmt,
            encoder,
            work_dir=scratch.format_dir(fmt),
        ),
    )
