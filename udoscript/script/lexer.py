"""
Script line reading and shell-style word splitting.

Lines are read lazily from any stream, so a script may come from a pipe.
Words are produced the way a POSIX shell would produce them for a simple
command: quoting and escapes, plus variable, command, arithmetic, tilde and
pathname expansion. Anything that would make the line more than a simple
command (pipes, redirections, lists, groups) is refused.
"""

import shlex
import subprocess
from typing import IO, Iterable, Iterator, Mapping, Optional, Union
from dataclasses import dataclass
import structlog

from ..core.errors import ParseError


logger = structlog.get_logger()

COMMENT_PREFIXES = ("#", ";")

# Characters that require a real shell to expand the line
EXPANSION_CHARS = frozenset("$`*?[~")

# Unquoted characters refused outside a substitution
SPECIAL_CHARS = frozenset("|&;<>(){}")


@dataclass(frozen=True)
class ScriptLine:
    """A non-empty, non-comment script line and its 1-based line number."""
    lineno: int
    text: str


def _decode(raw: Union[bytes, str], lineno: int) -> str:
    if isinstance(raw, str):
        return raw
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as e:
        raise ParseError(f"invalid UTF-8 input: {e.reason}", lineno=lineno)


def read_lines(stream: Union[IO[bytes], IO[str], Iterable[str]]) -> Iterator[ScriptLine]:
    """
    Yield script lines from a stream, skipping blanks and comments.

    Lines are trimmed; a line whose first character is `#` or `;` is a
    comment. The stream is never seeked.
    """
    for lineno, raw in enumerate(stream, start=1):
        text = _decode(raw, lineno).strip()
        if not text or text.startswith(COMMENT_PREFIXES):
            continue
        yield ScriptLine(lineno, text)


def first_word(text: str) -> Optional[str]:
    """
    Return the first word of a line without expanding it.

    Used to follow block nesting in lines that are stored or skipped, not
    executed. A first word that would be changed by expansion cannot be
    classified and is a parse error.
    """
    try:
        lexer = shlex.shlex(text, posix=True)
        lexer.whitespace_split = True
        lexer.commenters = ""
        word = lexer.get_token()
    except ValueError as e:
        raise ParseError(f"cannot parse line: {e}")
    if word is None:
        return None
    head = text.split(None, 1)[0]
    if any(c in EXPANSION_CHARS for c in head):
        raise ParseError(f"block keyword cannot be determined without expansion: '{head}'")
    return word


def check_syntax(text: str) -> str:
    """
    Refuse unterminated quotes and unquoted shell special characters.

    Returns:
        The line without its comment: an unquoted `#` starting a word ends
        the command, as in the shell
    """
    quote: Optional[str] = None
    closers: list[str] = []   # pending ")" / "}" of open substitutions
    backtick = False
    word_start = True
    i = 0
    while i < len(text):
        c = text[i]
        blank = False
        if quote == "'":
            if c == "'":
                quote = None
        elif c == "\\":
            i += 1
        elif quote == '"':
            if c == '"':
                quote = None
            elif c == "$" and text[i + 1:i + 2] in ("(", "{"):
                closers.append(")" if text[i + 1] == "(" else "}")
                i += 1
            elif closers and c == closers[-1]:
                closers.pop()
        elif c in ("'", '"'):
            quote = c
        elif c == "`":
            backtick = not backtick
        elif c == "$" and text[i + 1:i + 2] in ("(", "{"):
            closers.append(")" if text[i + 1] == "(" else "}")
            i += 1
        elif closers or backtick:
            if c == "(":
                closers.append(")")
            elif c == "{":
                closers.append("}")
            elif closers and c == closers[-1]:
                closers.pop()
        elif c in " \t":
            blank = True
        elif c == "#" and word_start:
            return text[:i].rstrip()
        elif c in SPECIAL_CHARS:
            raise ParseError(f"illegal occurrence of '{c}'")
        word_start = blank
        i += 1

    if quote is not None:
        raise ParseError(f"unterminated {quote} quote")
    if backtick:
        raise ParseError("unterminated ` substitution")
    if closers:
        raise ParseError(f"unterminated substitution, missing '{closers[-1]}'")
    return text


def split_words(
    text: str,
    lineno: Optional[int] = None,
    shell: str = "/bin/sh",
    environ: Optional[Mapping[str, str]] = None,
) -> list[str]:
    """
    Split and expand one script line into words.

    Args:
        text: Trimmed line
        lineno: Line number attached to parse errors
        shell: POSIX shell used when the line needs expansion
        environ: Environment seen by expansions

    Returns:
        Words of the line, possibly empty
    """
    try:
        code = check_syntax(text)
        if not any(c in EXPANSION_CHARS for c in code):
            return shlex.split(code, posix=True)
        return _shell_expand(code, shell, environ)
    except ParseError as e:
        if lineno is not None:
            e.context.setdefault("line", lineno)
        raise
    except ValueError as e:
        raise ParseError(f"cannot parse line: {e}", lineno=lineno)


def _shell_expand(text: str, shell: str, environ: Optional[Mapping[str, str]]) -> list[str]:
    # The leading "-" guards against an empty expansion, which would still
    # make printf print its format once
    script = "printf '%s\\0' - " + text
    logger.debug("line_expanding", shell=shell, line=text)
    try:
        result = subprocess.run(
            [shell, "-c", script],
            env=dict(environ) if environ is not None else None,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            check=False,
        )
    except OSError as e:
        raise ParseError(f"cannot run shell {shell}: {e}")
    if result.returncode != 0:
        message = result.stderr.decode("utf-8", errors="replace").strip()
        raise ParseError(f"expansion failed: {message or f'exit status {result.returncode}'}")
    try:
        output = result.stdout.decode("utf-8")
    except UnicodeDecodeError as e:
        raise ParseError(f"expansion produced invalid UTF-8: {e.reason}")
    words = output.split("\0")
    # Drop the guard word and the empty string after the last terminator
    return words[1:-1]
