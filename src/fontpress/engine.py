"""Glyph subsetting with fontTools, including CFF to TrueType normalization.

Usage:
    engine = SubsetEngine(timeout=30)
    result = await engine.subset(Path("in.otf"), "ABC")
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from io import BytesIO
from pathlib import Path

from fontTools import subset as ft_subset
from fontTools.pens.cu2quPen import Cu2QuPen
from fontTools.pens.ttGlyphPen import TTGlyphPen
from fontTools.ttLib import TTFont, TTLibError, newTable

from fontpress.config import DEFAULT_EXTENSION, OTF_EXTENSIONS, PROCESSING_TIMEOUT
from fontpress.errors import (
    NoOutputError,
    ProcessingTimeoutError,
    SubsetError,
)
from fontpress.repertoire import Repertoire
from fontpress.tempfiles import PathOwner, make_temp_dir, remove_path
from fontpress.workers import offload

logger = logging.getLogger(__name__)

# Quiet fontTools' per-table chatter
logging.getLogger("fontTools.subset").setLevel(logging.WARNING)

# Max approximation error (font units) when turning cubic curves into quadratics
CU2QU_MAX_ERR = 1.0


@dataclass
class SubsetResult:
    """Subsetted font bytes plus what the publisher needs to name them."""

    data: bytes
    extension: str
    path: Path
    normalized: bool = False

    @property
    def size(self) -> int:
        return len(self.data)


def is_otf_family(path: Path) -> bool:
    """True for CFF-flavoured OpenType input, judged by suffix or 'OTTO' tag."""
    if path.suffix.lower() in OTF_EXTENSIONS:
        return True
    try:
        with open(path, "rb") as f:
            return f.read(4) == b"OTTO"
    except OSError:
        return False


def output_suffix(font: TTFont) -> str:
    """File extension matching the font's outline format, not its input name."""
    if "CFF " in font or "CFF2" in font:
        return ".otf"
    if "glyf" in font:
        return ".ttf"
    return DEFAULT_EXTENSION


# ---------------------------------------------------------------------------
# CFF -> TrueType
# ---------------------------------------------------------------------------


def otf_to_ttf(font: TTFont, max_err: float = CU2QU_MAX_ERR) -> TTFont:
    """Convert a CFF-outline font to TrueType outlines and reload it.

    Cubic curves are approximated by quadratics. The returned font is a
    fresh TTFont parsed from the converted bytes.
    """
    if "CFF " not in font:
        return font

    glyph_order = font.getGlyphOrder()
    glyph_set = font.getGlyphSet()

    glyf = newTable("glyf")
    glyf.glyphOrder = glyph_order
    glyf.glyphs = {}
    for name in glyph_order:
        pen = TTGlyphPen(None)
        glyph_set[name].draw(Cu2QuPen(pen, max_err, reverse_direction=True))
        glyph = pen.glyph()
        if glyph.numberOfContours:
            glyph.recalcBounds(glyf)
        glyf.glyphs[name] = glyph

    font["loca"] = newTable("loca")
    font["glyf"] = glyf
    del font["CFF "]
    if "VORG" in font:
        del font["VORG"]

    hmtx = font["hmtx"]
    for name, glyph in glyf.glyphs.items():
        if hasattr(glyph, "xMin"):
            hmtx[name] = (hmtx[name][0], glyph.xMin)

    maxp = newTable("maxp")
    maxp.tableVersion = 0x00010000
    maxp.numGlyphs = len(glyph_order)
    maxp.maxZones = 1
    maxp.maxTwilightPoints = 0
    maxp.maxStorage = 0
    maxp.maxFunctionDefs = 0
    maxp.maxInstructionDefs = 0
    maxp.maxStackElements = 0
    maxp.maxSizeOfInstructions = 0
    maxp.maxComponentElements = 0
    maxp.maxPoints = 0
    maxp.maxContours = 0
    maxp.maxCompositePoints = 0
    maxp.maxCompositeContours = 0
    maxp.maxComponentDepth = 0
    font["maxp"] = maxp

    post = font["post"]
    post.formatType = 2.0
    post.extraNames = []
    post.mapping = {}
    post.glyphOrder = glyph_order

    font["head"].glyphDataFormat = 0
    font.sfntVersion = "\x00\x01\x00\x00"

    buf = BytesIO()
    font.save(buf)
    buf.seek(0)
    return TTFont(buf)


# ---------------------------------------------------------------------------
# Subsetting
# ---------------------------------------------------------------------------


def _subset_options() -> ft_subset.Options:
    options = ft_subset.Options()
    options.hinting = False
    options.desubroutinize = True
    options.notdef_outline = True
    options.name_IDs = ["*"]
    options.name_languages = ["*"]
    options.name_legacy = True
    return options


def subset_font_file(
    input_path: Path, text: str, output_dir: Path, normalize_otf: bool
) -> tuple[Path, bool]:
    """Subset ``input_path`` to ``text`` and write the result into ``output_dir``.

    Blocking; call through ``offload``. Returns the output path and whether
    CFF outlines were converted. Raises SubsetError for unreadable fonts or
    when the font has no glyph for any requested character.
    """
    try:
        font = TTFont(str(input_path), fontNumber=0)
    except (TTLibError, OSError, AssertionError, ValueError) as e:
        msg = f"Cannot read font {input_path.name}: {e}"
        raise SubsetError(msg) from e

    try:
        normalized = False
        if normalize_otf and "CFF " in font:
            logger.info("CFF outlines detected in %s, converting to TrueType", input_path.name)
            converted = otf_to_ttf(font)
            font.close()
            font = converted
            normalized = True

        cmap = font.getBestCmap() or {}
        if not any(ord(ch) in cmap for ch in text):
            msg = "Font has no glyphs for any of the requested characters"
            raise SubsetError(msg)

        subsetter = ft_subset.Subsetter(options=_subset_options())
        subsetter.populate(text=text)
        subsetter.subset(font)

        output_path = output_dir / f"{input_path.stem}{output_suffix(font)}"
        font.save(str(output_path))
        return output_path, normalized
    except SubsetError:
        raise
    except Exception as e:
        msg = f"Subsetting failed: {e}"
        raise SubsetError(msg) from e
    finally:
        font.close()


class SubsetEngine:
    """Runs subsetting off the event loop with a processing timeout.

    A subset call that times out keeps running in its worker thread until it
    finishes on its own; only the waiting is abandoned. The output directory
    it writes into still belongs to the caller's owner and is removed there.
    """

    def __init__(
        self,
        *,
        timeout: float = PROCESSING_TIMEOUT,
        normalize_otf: bool = True,
        temp_dir: str | None = None,
    ):
        self.timeout = timeout
        self.normalize_otf = normalize_otf
        self.temp_dir = temp_dir

    async def subset(
        self,
        input_path: Path,
        repertoire: Repertoire | str,
        owner: PathOwner | None = None,
    ) -> SubsetResult:
        text = str(repertoire)
        if not text:
            raise SubsetError("Refusing to subset with an empty character set")

        output_dir = make_temp_dir("fontpress-output-", self.temp_dir, owner)
        if self.normalize_otf and is_otf_family(input_path):
            logger.info("OTF input %s will be normalized to TrueType", input_path.name)

        try:
            try:
                _, normalized = await asyncio.wait_for(
                    offload(subset_font_file, input_path, text, output_dir, self.normalize_otf),
                    timeout=self.timeout,
                )
            except asyncio.TimeoutError as e:
                msg = (
                    f"Subsetting timed out after {self.timeout:g}s; "
                    "try fewer characters or a smaller font"
                )
                raise ProcessingTimeoutError(msg) from e

            output_path = self._pick_output(output_dir)
            data = output_path.read_bytes()
        except BaseException:
            if owner is None:
                remove_path(output_dir)
            raise

        logger.info(
            "Subset %s: %d chars -> %s (%d bytes)",
            input_path.name,
            len(text),
            output_path.name,
            len(data),
        )
        return SubsetResult(
            data=data,
            extension=output_path.suffix.lower(),
            path=output_path,
            normalized=normalized,
        )

    @staticmethod
    def _pick_output(output_dir: Path) -> Path:
        """Return the single output file; with several, the first by name."""
        files = sorted(p for p in output_dir.iterdir() if p.is_file())
        if not files:
            msg = "Subsetting produced no output file"
            raise NoOutputError(msg)
        if len(files) > 1:
            logger.warning(
                "Subsetting produced %d files, using %s", len(files), files[0].name
            )
        return files[0]
