from __future__ import annotations

from dataclasses import dataclass, field
from threading import RLock
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from .exceptions import ConfigError
from .rules import DEFAULT_RULES, Rule


def cache_key(names: Iterable[str]) -> str:
    """Cache key for a rule combination: sorted names joined by commas."""
    return ",".join(sorted(names))


@dataclass
class RuleRegistry:
    """In-memory registry of sanitization rules.

    The built-in table is shared by reference; registering a rule with a
    built-in name shadows it for this registry only.

    Resolutions are memoized by cache_key(). Each entry holds the name -> Rule
    mapping for the combination, so the order applied is always the order the
    caller asked for, even when two orderings share a key. An entry that lacks
    a requested, registered name is rebuilt.

    - register/unregister: O(1) average, clears the resolution cache
    - resolve: O(k) for k requested names
    - list_all: O(n)
    """

    defaults: Mapping[str, Rule] = field(default_factory=lambda: DEFAULT_RULES, repr=False)

    _rules: Dict[str, Rule] = field(default_factory=dict, init=False, repr=False)
    _resolved: Dict[str, Mapping[str, Rule]] = field(default_factory=dict, init=False, repr=False)
    _lock: RLock = field(default_factory=RLock, init=False, repr=False)

    def __post_init__(self) -> None:
        for rule in self.defaults.values():
            self._rules[rule.name] = rule

    def register(self, rule: Rule) -> None:
        """Insert or overwrite a rule by name."""
        if not isinstance(rule, Rule):
            raise TypeError("Only Rule instances may be registered")
        with self._lock:
            self._rules[rule.name] = rule
            self._resolved.clear()

    def unregister(self, name: str) -> None:
        """Remove a rule by name. Unknown names are ignored."""
        with self._lock:
            self._rules.pop(name, None)
            self._resolved.clear()

    def get(self, name: str) -> Rule:
        with self._lock:
            return self._rules[name]

    def try_get(self, name: str) -> Optional[Rule]:
        with self._lock:
            return self._rules.get(name)

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._rules

    def __len__(self) -> int:
        with self._lock:
            return len(self._rules)

    def names(self) -> List[str]:
        with self._lock:
            return list(self._rules.keys())

    def list_all(self) -> List[Rule]:
        """List rules in insertion order (built-ins first)."""
        with self._lock:
            return list(self._rules.values())

    def resolve(self, names: Sequence[str]) -> List[Rule]:
        """Return the rules for names, in the requested order.

        Unknown names are dropped silently; use validate_names() where they
        should be rejected.
        """

        requested = list(names)
        key = cache_key(requested)
        with self._lock:
            resolved = self._resolved.get(key)
            # Names may contain commas, so distinct requests can share a key.
            if resolved is None or any(n not in resolved and n in self._rules for n in requested):
                resolved = MappingProxyType(
                    {n: self._rules[n] for n in requested if n in self._rules}
                )
                self._resolved[key] = resolved
        return [resolved[n] for n in requested if n in resolved]

    def is_cached(self, names: Sequence[str]) -> bool:
        with self._lock:
            return cache_key(names) in self._resolved

    def validate_names(self, names: Sequence[str]) -> bool:
        """Strict counterpart of resolve(): every name must be registered.

        Raises
        - ConfigError listing every unknown name.
        """

        with self._lock:
            invalid = [n for n in names if n not in self._rules]
        if invalid:
            raise ConfigError(
                f"Invalid sanitization rules: {', '.join(invalid)}", invalid_rules=invalid
            )
        return True
