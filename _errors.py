from typing import Optional


class ParserError(Exception):
    """Base class for everything raised while turning OpenAIR text into features.

    Every error carries the 1-based source line it was raised for (if known) so callers
    can point users at the offending definition.
    """

    def __init__(
        self,
        message: str,
        *,
        line_number: Optional[int] = None,
        original: Optional[BaseException] = None,
    ):
        parts = [message]
        if line_number is not None:
            parts.append(f"(line {line_number})")
        super().__init__(" ".join(parts))
        self.message = message
        self.line_number = line_number
        self.original = original


class TokenizeError(ParserError):
    """A source line could not be classified or its values are out of range."""


class GrammarError(ParserError):
    """Two adjacent tokens appear in an order the format does not allow."""

    def __init__(self, token, next_token, *, rule: str):
        message = (
            f"Token '{token.kind.value}' on line {token.line_number} must not be followed by "
            f"'{next_token.kind.value}' on line {next_token.line_number}: {rule}"
        )
        super().__init__(message, line_number=token.line_number)
        self.token = token
        self.next_token = next_token
        self.rule = rule


class UnknownTokenError(ParserError):
    """A token of a kind nobody knows how to handle reached the pipeline."""


class MissingReferenceError(ParserError):
    """An arc or circle has no preceding token to take its center from."""


class DegenerateGeometryError(ParserError):
    """An arc collapses to a single point."""


class CeilingOrderError(ParserError):
    """The lower vertical limit lies above the upper one."""


class InsufficientGeometryError(ParserError):
    """The boundary ring has too few points to enclose an area."""


class GeometryInvalidError(ParserError):
    """The boundary polygon is not valid, not simple or intersects itself."""


class GeometryRepairError(ParserError):
    """Repairing a broken boundary failed, envelope fallback included."""
