import pytest

from authflow.approvals import ApprovalRegistry
from authflow.cookies import APPROVED_CLIENTS_COOKIE, THIRTY_DAYS


def test_missing_cookie_means_nothing_approved() -> None:
    registry = ApprovalRegistry("secret")
    assert registry.is_approved(None, "client-a") is False
    assert registry.read("") == []


def test_approve_issues_signed_thirty_day_cookie() -> None:
    registry = ApprovalRegistry("secret")
    cookie = registry.approve(None, "client-a")

    assert cookie.name == APPROVED_CLIENTS_COOKIE
    assert cookie.max_age == THIRTY_DAYS
    assert registry.is_approved(cookie.value, "client-a")
    assert not registry.is_approved(cookie.value, "client-b")


def test_approve_grows_and_is_idempotent() -> None:
    registry = ApprovalRegistry("secret")
    first = registry.approve(None, "client-a").value
    second = registry.approve(first, "client-b").value
    again = registry.approve(second, "client-a").value

    assert registry.read(second) == ["client-a", "client-b"]
    assert registry.read(again) == ["client-a", "client-b"]


def test_every_flipped_byte_invalidates_cookie() -> None:
    registry = ApprovalRegistry("secret")
    value = registry.approve(registry.approve(None, "client-a").value, "client-b").value

    for i in range(len(value)):
        tampered = value[:i] + chr(ord(value[i]) ^ 1) + value[i + 1:]
        assert registry.is_approved(tampered, "client-a") is False
        assert registry.is_approved(tampered, "client-b") is False


def test_cookie_signed_with_other_secret_is_ignored() -> None:
    foreign = ApprovalRegistry("other-secret").approve(None, "client-a").value
    assert ApprovalRegistry("secret").read(foreign) == []


@pytest.mark.parametrize("garbage", ["no-dot", "a.b.c", ".", "zz.%%%", "deadbeef.e30"])
def test_garbage_cookie_reads_empty(garbage: str) -> None:
    assert ApprovalRegistry("secret").read(garbage) == []


def test_secret_is_required() -> None:
    with pytest.raises(ValueError):
        ApprovalRegistry("")
