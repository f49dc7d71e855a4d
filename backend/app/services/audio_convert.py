"""
Audio normalization for audio-grounded turns

The chat model accepts wav / mp3 input audio only. Browser recordings
(webm/opus, ogg, m4a) are converted to 16k mono WAV with ffmpeg first.
"""
import asyncio
import base64
import logging
import os
import tempfile
from typing import Optional, Tuple

import ffmpeg

logger = logging.getLogger("uvicorn.error")

MODEL_AUDIO_FORMATS = ("wav", "mp3")
FORMAT_ALIASES = {"mpeg": "mp3", "x-wav": "wav", "wave": "wav"}


def to_wav_16k_mono(input_path: str) -> str:
    """Convert any ffmpeg-readable audio to 16k mono wav, return wav path (caller responsible for deletion)"""
    if not os.path.exists(input_path):
        raise FileNotFoundError(f"Input file not found: {input_path}")

    file_size = os.path.getsize(input_path)
    if file_size == 0:
        raise ValueError(f"Input file is empty: {input_path}")

    logger.info("[ffmpeg] Converting %s (%d bytes) to WAV...", input_path, file_size)

    with tempfile.NamedTemporaryFile(delete=False, suffix=".wav") as wav_file:
        try:
            (
                ffmpeg
                .input(input_path)
                .output(
                    wav_file.name,
                    ac=1,           # Mono
                    ar="16000",     # 16kHz sample rate
                    format="wav",
                    acodec="pcm_s16le",  # 16-bit PCM
                    loglevel="error",
                )
                .overwrite_output()
                .run(capture_stdout=True, capture_stderr=True)
            )
        except ffmpeg.Error as e:
            stderr = e.stderr.decode("utf-8", errors="ignore") if e.stderr else "Unknown error"
            logger.error("[ffmpeg] ERROR converting %s: %s", input_path, stderr)
            if os.path.exists(wav_file.name):
                os.unlink(wav_file.name)
            raise RuntimeError(f"ffmpeg conversion failed: {stderr[:200]}") from e

    # Check WAV file header (should be "RIFF")
    with open(wav_file.name, "rb") as f:
        wav_header = f.read(4)
    if wav_header != b"RIFF":
        os.unlink(wav_file.name)
        raise ValueError(f"Invalid WAV file header: {wav_header.hex()}")

    logger.info("[ffmpeg] Conversion successful: %s (%d bytes)", wav_file.name, os.path.getsize(wav_file.name))
    return wav_file.name


def convert_base64_to_wav(audio_base64: str, audio_format: str) -> str:
    """Decode, convert through a temp file, return base64 WAV"""
    raw = base64.b64decode(audio_base64, validate=True)
    src_path = None
    wav_path = None
    try:
        with tempfile.NamedTemporaryFile(delete=False, suffix=f".{audio_format}") as src:
            src.write(raw)
            src_path = src.name
        wav_path = to_wav_16k_mono(src_path)
        with open(wav_path, "rb") as f:
            return base64.b64encode(f.read()).decode("ascii")
    finally:
        for path in (src_path, wav_path):
            if path and os.path.exists(path):
                os.unlink(path)


async def normalize_audio(
    audio_base64: Optional[str],
    audio_format: Optional[str],
) -> Tuple[Optional[str], Optional[str]]:
    """
    Return (audio_base64, audio_format) ready for the model.

    Formats the model accepts pass through. Anything else is converted to
    WAV in a worker thread; if conversion fails the audio is dropped and
    (None, None) is returned so the turn falls back to text mode.
    """
    if not audio_base64 or not audio_format:
        return None, None

    fmt = audio_format.lower().split(";")[0].split("/")[-1].strip()
    fmt = FORMAT_ALIASES.get(fmt, fmt)
    if fmt in MODEL_AUDIO_FORMATS:
        return audio_base64, fmt

    loop = asyncio.get_running_loop()
    try:
        wav_base64 = await loop.run_in_executor(None, convert_base64_to_wav, audio_base64, fmt)
    except (RuntimeError, ValueError, OSError) as e:
        logger.warning("[ffmpeg] Dropping %s audio, conversion failed: %s", fmt, e)
        return None, None
    return wav_base64, "wav"
