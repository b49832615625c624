from pathlib import Path
import sys

import pytest

PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from _errors import GrammarError, UnknownTokenError  # noqa: E402
from _grammar import check_adjacency, next_significant, split_blocks  # noqa: E402
from _parser import tokenize  # noqa: E402
from _tokens import Token, TokenKind  # noqa: E402

TWO_AIRSPACES = """\
* header comment
* second header line

AC D
AN FIRST
AH 10000ft
AL GND
DP 0N 0E
DP 0N 1E
DP 1N 1E

AC R
AN SECOND
AL GND
AH FL100
V X=0N 0E
DC 5
"""


def kinds(block):
    return [t.kind for t in block.tokens]


def test_split_two_blocks():
    blocks = split_blocks(tokenize(TWO_AIRSPACES))
    assert len(blocks) == 2
    assert [b.index for b in blocks] == [0, 1]
    assert blocks[0].first_line_number == 4
    assert blocks[1].first_line_number == 12


def test_header_comments_are_dropped():
    blocks = split_blocks(tokenize(TWO_AIRSPACES))
    assert blocks[0].tokens[0].kind is TokenKind.AC
    assert all(b.tokens[0].kind is TokenKind.AC for b in blocks)


def test_trailing_ignored_tokens_stay_with_their_block():
    blocks = split_blocks(tokenize(TWO_AIRSPACES))
    assert kinds(blocks[0])[-1] is TokenKind.BLANK
    assert kinds(blocks[0])[-2] is TokenKind.DP


def test_eof_belongs_to_no_block():
    tokens = tokenize(TWO_AIRSPACES)
    blocks = split_blocks(tokens)
    for block in blocks:
        assert TokenKind.EOF not in kinds(block)
    # every other token ends up in exactly one block, except the dropped header
    assert sum(len(b.tokens) for b in blocks) == len(tokens) - 1 - 3


def test_comment_only_file_has_no_blocks():
    assert split_blocks(tokenize("* nothing here\n\n* at all")) == []


def test_ignored_tokens_are_skipped_for_adjacency():
    text = "AC D\n* comment\n\nSP 0,1,0,0,255\nAN TEST\nAL GND\nAH 1000ft\nDP 0N 0E"
    blocks = split_blocks(tokenize(text))
    assert len(blocks) == 1


def test_illegal_pair_names_both_lines():
    text = "AC D\n* comment\n\nDP 0N 0E"
    with pytest.raises(GrammarError) as excinfo:
        split_blocks(tokenize(text))
    error = excinfo.value
    assert error.token.kind is TokenKind.AC
    assert error.next_token.kind is TokenKind.DP
    assert error.line_number == 1
    assert "line 1" in str(error)
    assert "line 4" in str(error)
    assert "'AC'" in str(error) and "'DP'" in str(error)
    assert "AC" in error.rule


@pytest.mark.parametrize(
    "text, first_line",
    [
        ("AC D\nAN X\nV X=0N 0E\nDC 5\nDP 0N 0E", 4),  # circle must close the block
        ("AC D\nAN X\nV X=0N 0E\nDP 0N 0E", 3),  # center must be used by an arc
        ("AC D\nAN X\nV D=-\nDC 5", 3),
        ("AN X\nAC D", 1),
        ("AC D\nAC E", 1),
    ],
)
def test_illegal_sequences(text, first_line):
    with pytest.raises(GrammarError) as excinfo:
        split_blocks(tokenize(text))
    assert excinfo.value.line_number == first_line


def test_block_without_eof_ending_in_dp_passes():
    tokens = [
        Token(TokenKind.AC, 1, "AC D"),
        Token(TokenKind.AN, 2, "AN X"),
        Token(TokenKind.DP, 3, "DP 0N 0E"),
    ]
    blocks = split_blocks(tokens)
    assert len(blocks) == 1
    assert len(blocks[0].tokens) == 3


def test_block_without_eof_ending_in_dc_fails_on_itself():
    tokens = [
        Token(TokenKind.AC, 1, "AC D"),
        Token(TokenKind.AN, 2, "AN X"),
        Token(TokenKind.VX, 3, "V X=0N 0E"),
        Token(TokenKind.DC, 4, "DC 5"),
    ]
    with pytest.raises(GrammarError) as excinfo:
        split_blocks(tokens)
    assert excinfo.value.token is excinfo.value.next_token
    assert excinfo.value.line_number == 4


def test_next_significant():
    tokens = tokenize("AC D\n* c\n\nAN X")
    assert next_significant(tokens, 0).kind is TokenKind.AN
    assert next_significant(tokens, len(tokens) - 1) is tokens[-1]


def test_unknown_token_kind():
    tokens = [Token(TokenKind.AC, 1, "AC D"), Token("XX", 2, "XX 1")]
    with pytest.raises(UnknownTokenError) as excinfo:
        check_adjacency(tokens, 0)
    assert excinfo.value.line_number == 2
    with pytest.raises(UnknownTokenError):
        split_blocks(tokens)


def test_eof_may_follow_eof():
    tokens = [Token(TokenKind.EOF, 1), Token(TokenKind.EOF, 2)]
    assert split_blocks(tokens) == []
