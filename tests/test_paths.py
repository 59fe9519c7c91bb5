import os

import pytest

from stash.errors import AccessDeniedError
from stash.paths import resolve_within


@pytest.fixture
def root(tmp_path):
    root = tmp_path / "root"
    root.mkdir()
    (root / "inside.txt").write_text("ok")
    return root


def test_resolves_plain_name(root):
    assert resolve_within(root, "inside.txt") == (root / "inside.txt").resolve()


def test_missing_name_still_resolves(root):
    # existence is the caller's concern
    assert resolve_within(root, "not-yet.txt").parent == root.resolve()


def test_accepts_dotted_names_that_stay_inside(root):
    assert resolve_within(root, "a..b.txt").name == "a..b.txt"
    assert resolve_within(root, "sub/../inside.txt") == (root / "inside.txt").resolve()


@pytest.mark.parametrize(
    "name",
    [
        "../../etc/passwd",
        "..",
        ".",
        "",
        "/etc/passwd",
        "sub/../../outside.txt",
        "inside.txt\x00.png",
    ],
)
def test_rejects_escapes(root, name):
    with pytest.raises(AccessDeniedError):
        resolve_within(root, name)


def test_rejects_symlink_out_of_root(root, tmp_path):
    outside = tmp_path / "outside.txt"
    outside.write_text("secret")
    (root / "link.txt").symlink_to(outside)

    with pytest.raises(AccessDeniedError):
        resolve_within(root, "link.txt")


def test_rejects_sibling_with_common_prefix(tmp_path, root):
    sibling = tmp_path / "root-evil"
    sibling.mkdir()
    with pytest.raises(AccessDeniedError):
        resolve_within(root, os.path.join("..", "root-evil", "x"))


def test_root_given_as_string(root):
    assert resolve_within(str(root), "inside.txt").read_text() == "ok"
