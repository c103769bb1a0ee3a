"""
Path -> event type routing table with single-wildcard patterns

Pattern syntax:
- "/pricing"   exact match
- "/blog/*"    prefix match
- "*.svg"      suffix match

A pattern with two or more wildcards, or a wildcard anywhere but the
first/last character, is rejected when the map is built.

Lookup is first-match-wins in registration order, not longest-prefix:
1. exact rule
2. first matching prefix rule; a SKIP resolution returns immediately
3. first matching suffix rule; a SKIP resolution returns immediately
4. the prefix match if any, else the suffix match, else NO_MATCH

Usage:
    rules = PrefixMap([
        ("/favicon.ico", SKIP),
        ("/api*", "api_call"),
        ("/*", "page_view"),
    ])
    rules.get("/api/users")  # "api_call"
"""
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from pagecollect.core.exceptions import ConfigurationError


SKIP = "$skip"


class _NoMatch:
    def __repr__(self) -> str:
        return "NO_MATCH"

    def __bool__(self) -> bool:
        return False


NO_MATCH = _NoMatch()

# An event type, None ("classify with the default policy") or SKIP
Resolution = Optional[str]
Rule = Tuple[str, Resolution]


class PrefixMap:
    """Compiled, read-only rule table"""

    def __init__(self, rules: Iterable[Rule]):
        self._exact: Dict[str, Resolution] = {}
        self._prefixes: List[Rule] = []
        self._suffixes: List[Rule] = []

        for pattern, resolution in rules:
            self._add(pattern, resolution)

    def _add(self, pattern: str, resolution: Resolution) -> None:
        if not isinstance(pattern, str):
            raise ConfigurationError(f"Invalid pattern {pattern!r}: expected a string")
        if resolution is not None and not isinstance(resolution, str):
            raise ConfigurationError(
                f"Invalid resolution {resolution!r} for pattern {pattern}: "
                f"expected event type, None or {SKIP!r}"
            )

        wildcards = pattern.count("*")
        if wildcards == 0:
            # first registration of an exact pattern wins
            self._exact.setdefault(pattern, resolution)
        elif wildcards > 1:
            raise ConfigurationError(
                f"Invalid pattern {pattern}. Only one wildcard at the beginning or "
                f"end of the path is supported, found {wildcards}"
            )
        elif pattern.endswith("*"):
            self._prefixes.append((pattern[:-1], resolution))
        elif pattern.startswith("*"):
            self._suffixes.append((pattern[1:], resolution))
        else:
            raise ConfigurationError(
                f"Invalid pattern {pattern}. Wildcard must be at the beginning or "
                f"end of the path"
            )

    def get(self, path: str) -> Union[Resolution, _NoMatch]:
        """Resolve a path: event type, None, SKIP or NO_MATCH"""
        if path in self._exact:
            return self._exact[path]

        prefix_match = next((rule for rule in self._prefixes if path.startswith(rule[0])), None)
        if prefix_match is not None and prefix_match[1] == SKIP:
            return SKIP

        suffix_match = next((rule for rule in self._suffixes if path.endswith(rule[0])), None)
        if suffix_match is not None and suffix_match[1] == SKIP:
            return SKIP

        if prefix_match is not None:
            return prefix_match[1]
        if suffix_match is not None:
            return suffix_match[1]
        return NO_MATCH

    def __len__(self) -> int:
        return len(self._exact) + len(self._prefixes) + len(self._suffixes)

    @classmethod
    def from_config(cls, rules: Union[Mapping[str, Resolution], List[Any], None]) -> "PrefixMap":
        """
        Build from config-style rules.

        Accepts a mapping (insertion order kept) or a list whose items are
        [pattern, resolution] pairs or single/multi entry mappings, which is
        what YAML files produce.
        """
        if rules is None:
            return cls([])
        if isinstance(rules, Mapping):
            return cls(rules.items())
        if not isinstance(rules, (list, tuple)):
            raise ConfigurationError(f"Wrong type of event type rules: {type(rules).__name__}")

        flat: List[Rule] = []
        for item in rules:
            if isinstance(item, Mapping):
                flat.extend(item.items())
            elif isinstance(item, (list, tuple)) and len(item) == 2:
                flat.append((item[0], item[1]))
            else:
                raise ConfigurationError(f"Can't parse event type rule {item!r}")
        return cls(flat)
