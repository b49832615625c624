"""Convert OpenAIR airspace definitions into GeoJSON polygons.

Typical use::

    import openair

    result = openair.parse(text, fix_geometry=True)
    for error in result.errors:
        print(error)
    geojson = result.to_geojson()

The file is tokenized line by line, checked for legal record order and split into one
block per airspace. Every block is then built and turned into a polygon feature on its
own, optionally on several threads.
"""

import dataclasses
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import _geo as geo
from _airspace import Airspace, build_airspace
from _errors import (
    CeilingOrderError,
    DegenerateGeometryError,
    GeometryInvalidError,
    GeometryRepairError,
    GrammarError,
    InsufficientGeometryError,
    MissingReferenceError,
    ParserError,
    TokenizeError,
    UnknownTokenError,
)
from _grammar import AirspaceBlock, split_blocks
from _parser import ALTITUDE_UNITS, DEFAULT_AIRSPACE_CLASSES, tokenize
from _polygon import Feature, feature_collection, finalize
from _tokens import Altitude, Token, TokenKind

__all__ = [
    "Airspace",
    "AirspaceBlock",
    "Altitude",
    "BlockError",
    "CeilingOrderError",
    "DegenerateGeometryError",
    "Feature",
    "GeometryInvalidError",
    "GeometryRepairError",
    "GrammarError",
    "InsufficientGeometryError",
    "MissingReferenceError",
    "ParseResult",
    "Parser",
    "ParserConfig",
    "ParserError",
    "Token",
    "TokenKind",
    "TokenizeError",
    "UnknownTokenError",
    "parse",
]

logger = logging.getLogger(__name__)

# errors that concern the whole file; they are never collected per block
STRUCTURAL_ERRORS = (TokenizeError, GrammarError, UnknownTokenError)


@dataclass(frozen=True)
class ParserConfig:
    """
    Parser settings.

    airspace_classes: AC classes accepted by the tokenizer.
    unlimited: flight level used for "UNL" ceilings.
    geometry_detail: points per full circle when building arcs and circles. Higher
        values mean smoother circles but more polygon points.
    validate_geometry: raise for invalid, non-simple or self-intersecting polygons.
    fix_geometry: repair broken polygons. This can alter the shape considerably.
    include_openair: add the original definition block as the ``openair`` property.
    default_alt_unit: unit for AL/AH values without one ('ft' or 'm').
    target_alt_unit: unit altitudes are converted to ('ft' or 'm').
    round_alt_values: round converted altitude values.
    max_workers: threads used to build airspaces, 1 builds them in order.
    fail_fast: raise the first per-airspace error instead of collecting it.
    """

    airspace_classes: Tuple[str, ...] = DEFAULT_AIRSPACE_CLASSES
    unlimited: int = 999
    geometry_detail: int = geo.DEFAULT_STEPS
    validate_geometry: bool = True
    fix_geometry: bool = False
    include_openair: bool = False
    default_alt_unit: str = "ft"
    target_alt_unit: str = "ft"
    round_alt_values: bool = False
    max_workers: int = 1
    fail_fast: bool = False

    def __post_init__(self):
        classes = self.airspace_classes
        if (
            isinstance(classes, str)
            or not classes
            or not all(isinstance(c, str) and c.strip() for c in classes)
        ):
            raise ValueError("Parameter 'airspace_classes' must be a list of non-empty strings.")
        object.__setattr__(self, "airspace_classes", tuple(classes))

        for name in ("unlimited", "geometry_detail", "max_workers"):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool):
                raise ValueError(f"Parameter '{name}' must be an integer.")
        if self.geometry_detail < 1:
            raise ValueError("Parameter 'geometry_detail' must be at least 1.")
        if self.max_workers < 1:
            raise ValueError("Parameter 'max_workers' must be at least 1.")

        for name in (
            "validate_geometry",
            "fix_geometry",
            "include_openair",
            "round_alt_values",
            "fail_fast",
        ):
            if not isinstance(getattr(self, name), bool):
                raise ValueError(f"Parameter '{name}' must be a boolean.")

        for name in ("default_alt_unit", "target_alt_unit"):
            value = getattr(self, name)
            if not isinstance(value, str) or value.upper() not in ALTITUDE_UNITS:
                raise ValueError(f"Unknown {name.replace('_', ' ')} '{value}'")


@dataclass
class BlockError:
    """An airspace that could not be converted; index is the block's position in the file."""

    index: int
    error: ParserError

    @property
    def line_number(self) -> Optional[int]:
        return self.error.line_number

    def __str__(self):
        return f"airspace #{self.index}: {self.error}"


@dataclass
class ParseResult:
    features: List[Feature] = field(default_factory=list)
    errors: List[BlockError] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors

    def to_geojson(self) -> Dict[str, Any]:
        return feature_collection(self.features)


class Parser:
    """OpenAIR parser. Keyword arguments override fields of ``config``."""

    def __init__(self, config: Optional[ParserConfig] = None, **overrides):
        config = config or ParserConfig()
        if overrides:
            config = dataclasses.replace(config, **overrides)
        self.config = config

    def tokenize(self, text: str) -> List[Token]:
        return tokenize(
            text,
            airspace_classes=self.config.airspace_classes,
            unlimited=self.config.unlimited,
            default_alt_unit=self.config.default_alt_unit,
            target_alt_unit=self.config.target_alt_unit,
            round_alt_values=self.config.round_alt_values,
        )

    def parse(self, text: str, cancel: Optional[threading.Event] = None) -> ParseResult:
        return self.parse_tokens(self.tokenize(text), cancel=cancel)

    def parse_file(self, path, cancel: Optional[threading.Event] = None) -> ParseResult:
        text = Path(path).read_text(encoding="utf-8-sig")
        return self.parse(text, cancel=cancel)

    def convert_block(self, block: AirspaceBlock) -> Feature:
        """Build and finalize a single airspace block."""
        airspace = build_airspace(block.tokens, geometry_detail=self.config.geometry_detail)
        return finalize(
            airspace,
            validate_geometry=self.config.validate_geometry,
            fix_geometry=self.config.fix_geometry,
            include_openair=self.config.include_openair,
        )

    def parse_tokens(
        self, tokens: Sequence[Token], cancel: Optional[threading.Event] = None
    ) -> ParseResult:
        """
        Convert a complete token list.

        Tokenizer, grammar and unknown token errors always raise. Errors of single
        airspaces are collected in ``ParseResult.errors`` unless ``fail_fast`` is set.
        Setting ``cancel`` stops blocks that have not started yet from being built.
        """
        blocks = split_blocks(tokens)
        result = ParseResult()
        if self.config.max_workers > 1 and len(blocks) > 1:
            self._convert_concurrently(blocks, result, cancel)
        else:
            self._convert_in_order(blocks, result, cancel)
        logger.debug(
            f"Converted {len(result.features)} of {len(blocks)} airspace(s), "
            f"{len(result.errors)} error(s)"
        )
        return result

    def _handle_error(self, block: AirspaceBlock, error: ParserError, result: ParseResult):
        if self.config.fail_fast or isinstance(error, STRUCTURAL_ERRORS):
            raise error
        logger.warning(
            f"Skipping airspace block {block.index} starting on line "
            f"{block.first_line_number}: {error}"
        )
        result.errors.append(BlockError(block.index, error))

    def _convert_in_order(self, blocks, result, cancel):
        for block in blocks:
            if cancel is not None and cancel.is_set():
                logger.info(f"Cancelled before airspace block {block.index}")
                break
            try:
                result.features.append(self.convert_block(block))
            except ParserError as e:
                self._handle_error(block, e, result)

    def _convert_if_not_cancelled(self, block, cancel) -> Optional[Feature]:
        if cancel is not None and cancel.is_set():
            return None
        return self.convert_block(block)

    def _convert_concurrently(self, blocks, result, cancel):
        with ThreadPoolExecutor(max_workers=self.config.max_workers) as pool:
            futures = [
                pool.submit(self._convert_if_not_cancelled, block, cancel) for block in blocks
            ]
            # collect in block order so output does not depend on scheduling
            for block, future in zip(blocks, futures):
                try:
                    feature = future.result()
                except ParserError as e:
                    try:
                        self._handle_error(block, e, result)
                    except ParserError:
                        for pending in futures:
                            pending.cancel()
                        raise
                    continue
                if feature is not None:
                    result.features.append(feature)


def parse(text: str, **config) -> ParseResult:
    """Parse OpenAIR text with a default parser; keyword arguments set ParserConfig fields."""
    return Parser(**config).parse(text)
