"""JMX object names (``domain:key=value,...``) used as remote identifiers."""

from dataclasses import dataclass
from typing import Dict, Iterator, Optional, Tuple


@dataclass(frozen=True)
class ObjectName:
    """Parsed object name. Key properties keep their original order."""

    domain: str
    properties: Tuple[Tuple[str, str], ...]

    @classmethod
    def parse(cls, text: str) -> "ObjectName":
        """
        Parse an object name string.

        Quoted values may contain commas, colons and equals signs; the
        quotes are kept in the stored value, as JMX does.

        Raises:
            ValueError: If the text is not a valid object name
        """
        domain, sep, rest = text.partition(":")
        if not sep or not rest:
            raise ValueError(f"Invalid object name: {text!r}")

        props = []
        for part in _split_unquoted(rest, ","):
            key, eq, value = part.partition("=")
            if not eq or not key:
                raise ValueError(f"Invalid key property {part!r} in {text!r}")
            props.append((key.strip(), value.strip()))
        return cls(domain=domain, properties=tuple(props))

    def key_property(self, key: str) -> Optional[str]:
        """Value of a key property, unquoted, or None when absent."""
        for k, v in self.properties:
            if k == key:
                if len(v) >= 2 and v[0] == '"' and v[-1] == '"':
                    return v[1:-1]
                return v
        return None

    def as_dict(self) -> Dict[str, str]:
        return dict(self.properties)

    def __str__(self) -> str:
        props = ",".join(f"{k}={v}" for k, v in self.properties)
        return f"{self.domain}:{props}"


def _split_unquoted(text: str, delimiter: str) -> Iterator[str]:
    """Split on delimiter outside of double quotes."""
    start = 0
    in_quotes = False
    escaped = False
    for i, ch in enumerate(text):
        if escaped:
            escaped = False
        elif ch == "\\" and in_quotes:
            escaped = True
        elif ch == '"':
            in_quotes = not in_quotes
        elif ch == delimiter and not in_quotes:
            yield text[start:i]
            start = i + 1
    yield text[start:]
