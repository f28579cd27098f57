import hashlib

from msdeposit.utils import new_digests, safe_entry_name, slugify, unique_entry_name


def test_slugify_basic():
    assert slugify("Hello World!") == "hello-world"
    assert slugify("Émile Zola") == "emile-zola"
    assert slugify("https://pass.example.org/submissions/1") == "https-pass-example-org-submissions-1"
    assert slugify("***") == "item"


def test_safe_entry_name_keeps_a_single_component():
    assert safe_entry_name("../../etc/passwd") == "passwd"
    assert safe_entry_name("C:\\docs\\My Paper (final).pdf") == "My_Paper_(final).pdf"
    assert safe_entry_name("..") == "file"


def test_unique_entry_name_counts_up():
    taken = {"figure.png", "figure-1.png"}
    assert unique_entry_name("figure.png", taken) == "figure-2.png"
    assert unique_entry_name("table.csv", taken) == "table.csv"
    assert unique_entry_name("README", {"README"}) == "README-1"
    assert unique_entry_name("data.tar.gz", {"data.tar.gz"}) == "data-1.tar.gz"


def test_new_digests_are_independent():
    digests = new_digests(["sha256", "md5"])
    digests["sha256"].update(b"abc")
    assert digests["sha256"].hexdigest() == hashlib.sha256(b"abc").hexdigest()
    assert digests["md5"].hexdigest() == hashlib.md5(b"").hexdigest()
