"""Loaded (PCM) sounds."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import ClassVar, List, Optional, Tuple
import io
import wave

from ..logging import get_logger
from ..utils.paths import clean_name
from ..zone.buffer import ZoneBuffer
from ..zone.constants import SND_FORMAT_PCM, AssetType, XBlock
from ..zone.errors import FormatError
from ..zone.reader import ZoneReader
from ..zone.records import Layout, padding, pointer, scalar
from .asset_file import read_asset_file, write_asset_file
from .base import AcquireContext, AssetHandler, ExportContext, Strategy

__all__ = ["LoadedSound", "SoundHandler", "sound_from_wav", "sound_to_wav"]


@dataclass(slots=True)
class LoadedSound:
    name: str = ""
    format: int = SND_FORMAT_PCM
    channels: int = 1
    bits: int = 16
    sample_rate: int = 44100
    data_len: int = 0
    data: Optional[bytes] = None

    LAYOUT: ClassVar[Layout] = Layout(
        pointer("name"),
        scalar("format", "H"),
        scalar("channels", "B"),
        scalar("bits", "B"),
        scalar("sample_rate", "I"),
        scalar("data_len", "I"),
        padding(4),
        pointer("data"),
    )


def sound_from_wav(name: str, raw: bytes) -> LoadedSound:
    try:
        with wave.open(io.BytesIO(raw), "rb") as w:
            frames = w.readframes(w.getnframes())
            return LoadedSound(
                name=name,
                format=SND_FORMAT_PCM,
                channels=w.getnchannels(),
                bits=w.getsampwidth() * 8,
                sample_rate=w.getframerate(),
                data_len=len(frames),
                data=frames,
            )
    except (wave.Error, EOFError) as exc:
        raise FormatError(f"Invalid WAV data for {name}: {exc}") from exc


def sound_to_wav(snd: LoadedSound) -> bytes:
    out = io.BytesIO()
    try:
        with wave.open(out, "wb") as w:
            w.setnchannels(snd.channels)
            w.setsampwidth(snd.bits // 8)
            w.setframerate(snd.sample_rate)
            w.writeframes(snd.data or b"")
    except wave.Error as exc:
        raise FormatError(f"Cannot encode {snd.name} as WAV: {exc}") from exc
    return out.getvalue()


class SoundHandler(AssetHandler):
    asset_type = AssetType.LOADED_SOUND
    record = LoadedSound

    def strategies(self) -> List[Tuple[str, Strategy]]:
        return [
            ("asset file", self._from_asset_file),
            ("wav", self._from_wav),
        ]

    def default(self, name: str, ctx: AcquireContext) -> LoadedSound:
        return LoadedSound(name=name, data=b"")

    def _from_asset_file(self, name: str, ctx: AcquireContext) -> LoadedSound:
        data = ctx.source.read(f"sound/{clean_name(name)}.sound")
        return read_asset_file(self, data, ctx.arena)

    def _from_wav(self, name: str, ctx: AcquireContext) -> LoadedSound:
        return sound_from_wav(name, ctx.source.read(f"sound/{clean_name(name)}.wav"))

    def write(self, snd: LoadedSound, buf: ZoneBuffer) -> None:
        dest = buf.write(snd)
        buf.push_stream(XBlock.VIRTUAL)
        dest.name = buf.write_str(snd.name)
        buf.pop_stream()
        buf.push_stream(XBlock.PHYSICAL)
        if snd.data is not None:
            buf.align(3)
            dest.data = buf.write_stream(snd.data)
            dest.data_len = len(snd.data)
        buf.pop_stream()

    def read(self, reader: ZoneReader) -> LoadedSound:
        snd = reader.read_single(LoadedSound)
        reader.push_stream(XBlock.VIRTUAL)
        if snd.name is not None:
            reader.read_string()
        reader.pop_stream()
        reader.push_stream(XBlock.PHYSICAL)
        if snd.data is not None:
            reader.align(3)
            reader.read_bytes(snd.data_len)
        reader.pop_stream()
        return reader.fixup(snd)

    def export(self, snd: LoadedSound, ctx: ExportContext) -> List[Path]:
        clean = clean_name(snd.name)
        if snd.format == SND_FORMAT_PCM and snd.bits % 8 == 0 and snd.bits > 0:
            try:
                wav = sound_to_wav(snd)
            except FormatError as exc:
                get_logger().warning("%s: %s, exporting asset file", snd.name, exc.message)
            else:
                path = ctx.path("sound", f"{clean}.wav")
                path.write_bytes(wav)
                return [path]
        path = ctx.path("sound", f"{clean}.sound")
        path.write_bytes(write_asset_file(self, snd))
        return [path]
