import threading

import pytest

from sanorm.core.sanitization.exceptions import ConfigError
from sanorm.core.sanitization.registry import RuleRegistry, cache_key
from sanorm.core.sanitization.rules import DEFAULT_RULES, Rule


def _upper() -> Rule:
    return Rule(name="upper", transform=str.upper, description="Uppercases input")


def test_registry_starts_with_builtins():
    reg = RuleRegistry()
    assert len(reg) == len(DEFAULT_RULES)
    assert "html" in reg
    assert reg.names()[:2] == ["html", "script"]


def test_register_and_get_custom_rule():
    reg = RuleRegistry()
    reg.register(_upper())
    assert reg.get("upper").transform("ab") == "AB"
    assert reg.try_get("missing") is None
    with pytest.raises(KeyError):
        reg.get("missing")


def test_register_rejects_non_rules():
    reg = RuleRegistry()
    with pytest.raises(TypeError):
        reg.register({"name": "x"})  # type: ignore[arg-type]


def test_register_overrides_builtin_for_this_registry_only():
    reg = RuleRegistry()
    reg.register(Rule(name="trim", transform=lambda v: v.rstrip()))
    assert reg.get("trim").transform("  x  ") == "  x"

    other = RuleRegistry()
    assert other.get("trim").transform("  x  ") == "x"
    assert DEFAULT_RULES["trim"].transform("  x  ") == "x"


def test_unregister_unknown_name_is_a_noop():
    reg = RuleRegistry()
    before = len(reg)
    reg.unregister("does-not-exist")
    assert len(reg) == before


def test_resolve_preserves_requested_order_and_drops_unknown():
    reg = RuleRegistry()
    rules = reg.resolve(["trim", "nope", "html", "trim"])
    assert [r.name for r in rules] == ["trim", "html", "trim"]


def test_resolution_cache_is_keyed_by_sorted_names_but_order_is_kept():
    reg = RuleRegistry()
    assert cache_key(["trim", "email-normalize"]) == cache_key(["email-normalize", "trim"])

    first = reg.resolve(["email-normalize", "trim"])
    assert reg.is_cached(["trim", "email-normalize"])
    second = reg.resolve(["trim", "email-normalize"])

    assert [r.name for r in first] == ["email-normalize", "trim"]
    assert [r.name for r in second] == ["trim", "email-normalize"]


def test_register_and_unregister_invalidate_resolution_cache():
    reg = RuleRegistry()
    assert reg.resolve(["upper"]) == []
    assert reg.is_cached(["upper"])

    reg.register(_upper())
    assert not reg.is_cached(["upper"])
    assert [r.name for r in reg.resolve(["upper"])] == ["upper"]

    reg.unregister("upper")
    assert not reg.is_cached(["upper"])
    assert reg.resolve(["upper"]) == []


def test_validate_names_lists_every_unknown_rule():
    reg = RuleRegistry()
    assert reg.validate_names(["html", "trim"]) is True

    with pytest.raises(ConfigError) as ei:
        reg.validate_names(["html", "bogus", "other"])
    assert ei.value.invalid_rules == ["bogus", "other"]
    assert str(ei.value) == "Invalid sanitization rules: bogus, other"


def test_list_all_returns_rules_in_insertion_order():
    reg = RuleRegistry()
    reg.register(_upper())
    names = [r.name for r in reg.list_all()]
    assert names[0] == "html"
    assert names[-1] == "upper"


def test_concurrent_register_and_resolve():
    reg = RuleRegistry()
    errors = []

    def writer(i: int) -> None:
        try:
            reg.register(Rule(name=f"r{i}", transform=str.lower))
        except Exception as e:  # pragma: no cover
            errors.append(e)

    def reader() -> None:
        try:
            for _ in range(50):
                reg.resolve(["html", "trim"])
        except Exception as e:  # pragma: no cover
            errors.append(e)

    threads = [threading.Thread(target=writer, args=(i,)) for i in range(20)]
    threads += [threading.Thread(target=reader) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert all(f"r{i}" in reg for i in range(20))


def test_comma_in_rule_name_does_not_collide_with_split_names():
    reg = RuleRegistry()
    reg.register(Rule(name="a,b", transform=str.upper))
    reg.register(Rule(name="a", transform=str.strip))
    reg.register(Rule(name="b", transform=str.lower))

    assert [r.name for r in reg.resolve(["a", "b"])] == ["a", "b"]
    assert [r.name for r in reg.resolve(["a,b"])] == ["a,b"]
    assert [r.name for r in reg.resolve(["b", "a"])] == ["b", "a"]
