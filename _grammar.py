import logging
from dataclasses import dataclass
from typing import List, Sequence, Tuple

from _errors import GrammarError, UnknownTokenError
from _tokens import Token, TokenKind

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AirspaceBlock:
    """Contiguous run of tokens describing one airspace, ignored tokens included."""

    index: int
    tokens: Tuple[Token, ...]

    @property
    def first_line_number(self) -> int:
        for token in self.tokens:
            if not token.is_ignored:
                return token.line_number
        return self.tokens[0].line_number


def _kind_name(token: Token) -> str:
    return getattr(token.kind, "value", str(token.kind))


def _ensure_known(token: Token) -> None:
    if token.allowed_next is None:
        raise UnknownTokenError(
            f"Unknown token '{_kind_name(token)}'", line_number=token.line_number
        )


def next_significant(tokens: Sequence[Token], index: int) -> Token:
    """The next non-ignored token after ``index``, or the token itself if none remains."""
    for j in range(index + 1, len(tokens)):
        if not tokens[j].is_ignored:
            return tokens[j]
    return tokens[index]


def check_adjacency(tokens: Sequence[Token], index: int) -> None:
    token = tokens[index]
    _ensure_known(token)
    following = next_significant(tokens, index)
    _ensure_known(following)
    if not token.is_allowed_next(following):
        allowed = ", ".join(sorted(k.value for k in token.allowed_next))
        raise GrammarError(
            token,
            following,
            rule=f"'{token.kind.value}' may only be followed by {allowed}",
        )


def split_blocks(tokens: Sequence[Token]) -> List[AirspaceBlock]:
    """
    Validate token order and cut the token list into airspace blocks in one pass.

    Every AC token opens a new block, AC and EOF close the block being read. EOF
    itself belongs to no block. Runs made of comments and blank lines only (a file
    header, for instance) are dropped.

    Raises GrammarError on the first illegal pair of adjacent tokens and
    UnknownTokenError for tokens of unknown kind.
    """
    blocks: List[AirspaceBlock] = []
    current: List[Token] = []
    has_content = False

    def close():
        nonlocal current, has_content
        if has_content:
            blocks.append(AirspaceBlock(len(blocks), tuple(current)))
        elif current:
            logger.debug(
                f"Dropping {len(current)} ignored line(s) starting on line {current[0].line_number}"
            )
        current = []
        has_content = False

    for i, token in enumerate(tokens):
        if token.is_ignored:
            current.append(token)
            continue

        check_adjacency(tokens, i)

        if token.kind in (TokenKind.AC, TokenKind.EOF):
            close()
            if token.kind is TokenKind.EOF:
                continue
        current.append(token)
        has_content = True

    close()
    logger.debug(f"Split {len(tokens)} tokens into {len(blocks)} airspace block(s)")
    return blocks
