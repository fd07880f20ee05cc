import os

from digicertify.shared.storage import safe_child_path, write_atomic


def test_safe_child_path(tmp_path):
    root = str(tmp_path)
    assert safe_child_path(root, "a/b.png") == os.path.join(os.path.realpath(root), "a", "b.png")
    assert safe_child_path(root, "../escape.png") is None
    assert safe_child_path(root, "") is None
    assert safe_child_path(root, "/etc/passwd") is None


def test_write_atomic_creates_parents(tmp_path):
    target = tmp_path / "nested" / "file.bin"
    write_atomic(str(target), b"data")
    assert target.read_bytes() == b"data"
    assert os.listdir(target.parent) == ["file.bin"]
