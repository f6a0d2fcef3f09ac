"""
CFF2 blend resolution.

CFF2 charstrings carry variations inline: a ``blend`` operator takes ``n``
base values followed by ``n * k`` deltas, where ``k`` is the region count of
the ItemVariationData selected by ``vsindex``. Resolving a program replaces
every blend with its weighted result, inlines subroutines and drops
``vsindex``, leaving a static charstring.
"""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

from fontTools.misc.psCharStrings import calcSubrBias

from vfresolve.core.errors import GlyphVariationError, InvalidFontError
from vfresolve.tables.item_variation_store import RegionEvaluator
from vfresolve.utils.binary import round_half_away
from vfresolve.utils.logging import logger

MAX_SUBR_DEPTH = 10

# Private DICT keys that may hold blended values
BLENDABLE_NUMBERS = (
    "BlueScale",
    "BlueShift",
    "BlueFuzz",
    "StdHW",
    "StdVW",
    "LanguageGroup",
    "ExpansionFactor",
)
# Blended numbers that are not rounded to integers
FRACTIONAL_NUMBERS = ("BlueScale", "ExpansionFactor")
BLENDABLE_ARRAYS = (
    "BlueValues",
    "OtherBlues",
    "FamilyBlues",
    "FamilyOtherBlues",
    "StemSnapH",
    "StemSnapV",
)


def _drop_dict_key(dict_obj, key: str) -> None:
    """Remove a key from a fontTools CFF DICT so it is not compiled."""
    dict_obj.rawDict.pop(key, None)
    dict_obj.__dict__.pop(key, None)


@dataclass
class _ProgramState:
    glyph_id: int
    vsindex: int
    local_subrs: Sequence = ()
    global_subrs: Sequence = ()
    stack: list = field(default_factory=list)
    default_master: bool = False

    def pop(self, what: str):
        if not self.stack:
            raise GlyphVariationError(
                self.glyph_id, f"CFF2: operand stack underflow reading {what}"
            )
        return self.stack.pop()


class BlendApplier:
    """
    Resolves CFF2 blends at a normalized location.

    Region scalars are computed once per instance and grouped per
    ItemVariationData, so each ``vsindex`` maps straight to its scalar row.

    Args:
        evaluator: CFF2 VarStore evaluator
        coords: Normalized coordinates
        round_blends: Round resolved values to integers
    """

    def __init__(
        self,
        evaluator: RegionEvaluator,
        coords: Mapping[str, float],
        *,
        round_blends: bool = True,
    ) -> None:
        self.evaluator = evaluator
        self.round_blends = round_blends
        region_scalars = evaluator.region_scalars(coords)
        self.scalars = tuple(
            tuple(region_scalars[index] for index in data.region_indexes)
            for data in evaluator.store.data
        )

    def vsindex_scalars(self, vsindex: int) -> tuple[float, ...]:
        if not 0 <= vsindex < len(self.scalars):
            raise InvalidFontError(
                f"CFF2: vsindex {vsindex} out of range "
                f"({len(self.scalars)} ItemVariationData subtables)",
                context={"vsindex": vsindex},
            )
        return self.scalars[vsindex]

    def _value(
        self,
        base: float,
        deltas: Sequence[float],
        scalars: Sequence[float],
        *,
        rounded: bool | None = None,
    ):
        value = base + sum(scalar * delta for scalar, delta in zip(scalars, deltas))
        if rounded is None:
            rounded = self.round_blends
        if rounded:
            return round_half_away(value)
        return int(value) if value == int(value) else value

    def blend(self, operands: Sequence[float], count: int, vsindex: int) -> list:
        """
        Resolve one blend.

        Args:
            operands: ``count`` base values followed by ``count * k`` deltas
            count: Number of blended values
            vsindex: ItemVariationData index
        """
        scalars = self.vsindex_scalars(vsindex)
        region_count = len(scalars)
        bases = operands[:count]
        deltas = operands[count:]
        return [
            self._value(
                base,
                deltas[index * region_count : (index + 1) * region_count],
                scalars,
            )
            for index, base in enumerate(bases)
        ]

    def resolve_charstring(self, charstring, global_subrs, glyph_id: int) -> list:
        """
        Return the static program for a T2CharString.

        Raises:
            GlyphVariationError: If the program cannot be resolved
        """
        return self._program(charstring, global_subrs, glyph_id, default_master=False)

    def default_charstring(self, charstring, global_subrs, glyph_id: int) -> list:
        """
        Return the program at the default master: every blend keeps its base values.

        An out-of-range ``vsindex`` reads its delta count from the first
        ItemVariationData.

        Raises:
            GlyphVariationError: If the program cannot be walked at all
        """
        return self._program(charstring, global_subrs, glyph_id, default_master=True)

    def _program(self, charstring, global_subrs, glyph_id: int, *, default_master: bool) -> list:
        private = charstring.private
        try:
            charstring.decompile()
        except (IndexError, KeyError, TypeError, ValueError) as e:
            raise GlyphVariationError(
                glyph_id, f"CFF2: cannot decompile charstring: {e}"
            ) from e
        state = _ProgramState(
            glyph_id,
            getattr(private, "vsindex", 0),
            getattr(private, "Subrs", None) or (),
            global_subrs or (),
            default_master=default_master,
        )
        program: list = []
        try:
            self._walk(charstring.program, state, program, 0)
        except GlyphVariationError:
            raise
        except InvalidFontError as e:
            raise GlyphVariationError(glyph_id, str(e), context=e.context) from e
        program.extend(state.stack)
        return program

    def _walk(self, tokens, state: _ProgramState, out: list, depth: int) -> None:
        if depth > MAX_SUBR_DEPTH:
            raise GlyphVariationError(
                state.glyph_id, f"CFF2: subroutine nesting deeper than {MAX_SUBR_DEPTH}"
            )
        for token in tokens:
            if isinstance(token, bytes):
                out.append(token)
            elif not isinstance(token, str):
                state.stack.append(token)
            elif token == "blend":
                self._resolve_blend(state)
            elif token == "vsindex":
                state.vsindex = int(state.pop("vsindex"))
            elif token in ("callsubr", "callgsubr"):
                subrs = state.local_subrs if token == "callsubr" else state.global_subrs
                index = int(state.pop(token)) + calcSubrBias(subrs)
                if not 0 <= index < len(subrs):
                    raise GlyphVariationError(
                        state.glyph_id,
                        f"CFF2: {token} index {index} out of range ({len(subrs)} subrs)",
                    )
                subr = subrs[index]
                subr.decompile()
                self._walk(subr.program, state, out, depth + 1)
            elif token == "return":
                continue
            else:
                out.extend(state.stack)
                out.append(token)
                state.stack.clear()

    def _resolve_blend(self, state: _ProgramState) -> None:
        count = int(state.pop("blend count"))
        vsindex = state.vsindex
        if state.default_master and self.scalars and not 0 <= vsindex < len(self.scalars):
            vsindex = 0
        region_count = len(self.vsindex_scalars(vsindex))
        needed = count * (region_count + 1)
        if count < 0 or needed > len(state.stack):
            raise GlyphVariationError(
                state.glyph_id,
                f"CFF2: blend of {count} values needs {needed} operands, "
                f"{len(state.stack)} available",
            )
        operands = state.stack[len(state.stack) - needed :]
        del state.stack[len(state.stack) - needed :]
        if state.default_master:
            state.stack.extend(operands[:count])
        else:
            state.stack.extend(self.blend(operands, count, state.vsindex))

    def resolve_private(self, private) -> int:
        """
        Resolve blended Private DICT values in place.

        fontTools keeps a blended number as ``[base, delta...]``.

        Returns:
            Number of keys resolved
        """
        scalars = self.vsindex_scalars(getattr(private, "vsindex", 0))
        resolved = 0
        for key in BLENDABLE_NUMBERS:
            value = getattr(private, key, None)
            if isinstance(value, list):
                rounded = self.round_blends and key not in FRACTIONAL_NUMBERS
                setattr(
                    private, key, self._value(value[0], value[1:], scalars, rounded=rounded)
                )
                resolved += 1
        for key in BLENDABLE_ARRAYS:
            value = getattr(private, key, None)
            if isinstance(value, list) and any(isinstance(v, list) for v in value):
                setattr(
                    private,
                    key,
                    [
                        self._value(v[0], v[1:], scalars) if isinstance(v, list) else v
                        for v in value
                    ],
                )
                resolved += 1
        _drop_dict_key(private, "vsindex")
        return resolved


def strip_variations(cff) -> None:
    """
    Remove what a static CFF2 no longer needs: the VarStore and subroutines.

    Args:
        cff: fontTools CFFFontSet whose charstrings are already resolved
    """
    top = cff.topDictIndex[0]
    _drop_dict_key(top, "VarStore")
    for font_dict in getattr(top, "FDArray", None) or ():
        private = font_dict.Private
        _drop_dict_key(private, "Subrs")
    del cff.GlobalSubrs.items[:]
    logger.debug("CFF2: removed VarStore and subroutines")
