"""
Key/value properties text codec.

Both the shared configuration blob and the rendered process configuration file
use this format: one ``key=value`` pair per line, ``#`` or ``!`` comments,
``:`` accepted as separator, backslash escapes and line continuations.
Output is sorted by key so that rendering the same mapping twice produces
identical text apart from the header comments.
"""

from typing import Dict, Iterable, Mapping, Optional

_ESCAPES = {'t': '\t', 'n': '\n', 'r': '\r', 'f': '\f'}


def _unescape(text: str) -> str:
    out = []
    index = 0
    while index < len(text):
        char = text[index]
        if char == '\\' and index + 1 < len(text):
            index += 1
            nxt = text[index]
            if nxt == 'u' and index + 4 < len(text):
                code = text[index + 1 : index + 5]
                try:
                    out.append(chr(int(code, 16)))
                    index += 5
                    continue
                except ValueError:
                    pass
            out.append(_ESCAPES.get(nxt, nxt))
        else:
            out.append(char)
        index += 1
    return ''.join(out)


def _logical_lines(text: str) -> Iterable[str]:
    pending = None
    for raw in text.splitlines():
        line = raw.lstrip() if pending is not None else raw
        if pending is None:
            stripped = line.lstrip()
            if not stripped or stripped[0] in '#!':
                continue
            line = stripped
        else:
            line = pending + line

        # An odd number of trailing backslashes continues the line
        trailing = len(line) - len(line.rstrip('\\'))
        if trailing % 2 == 1:
            pending = line[:-1]
            continue

        pending = None
        yield line

    if pending is not None:
        yield pending


def _split_pair(line: str):
    index = 0
    while index < len(line):
        char = line[index]
        if char == '\\':
            index += 2
            continue
        if char in '=:' or char.isspace():
            break
        index += 1

    key = line[:index]
    rest = line[index:].lstrip(' \t\f')
    if rest[:1] in ('=', ':'):
        rest = rest[1:].lstrip(' \t\f')
    return _unescape(key), _unescape(rest)


def load_properties(text: str) -> Dict[str, str]:
    """Parse properties text into an ordered dict; later duplicates win."""
    properties: Dict[str, str] = {}
    for line in _logical_lines(text):
        key, value = _split_pair(line)
        if key:
            properties[key] = value
    return properties


def _escape(text: str, is_key: bool) -> str:
    out = []
    for position, char in enumerate(text):
        if char == '\\':
            out.append('\\\\')
        elif char == '\n':
            out.append('\\n')
        elif char == '\r':
            out.append('\\r')
        elif char == '\t':
            out.append('\\t')
        elif char == '\f':
            out.append('\\f')
        elif char in '=:#!' and (is_key or position == 0):
            out.append('\\' + char)
        elif char == ' ' and (is_key or position == 0):
            out.append('\\ ')
        else:
            out.append(char)
    return ''.join(out)


def dump_properties(properties: Mapping[str, object], comments: Optional[Iterable[str]] = None) -> str:
    """Serialize a mapping to properties text with optional header comments."""
    lines = [f"#{comment}" for comment in (comments or [])]
    for key in sorted(properties):
        lines.append(f"{_escape(str(key), True)}={_escape(str(properties[key]), False)}")
    return '\n'.join(lines) + '\n'
