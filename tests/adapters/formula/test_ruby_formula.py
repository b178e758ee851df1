import pytest

from cuckoo_tap.adapters.ruby_formula import formula_class_name, parse_formula, render_formula
from cuckoo_tap.kernel.descriptor import descriptor_from_mapping
from cuckoo_tap.kernel.errors import DescriptorError

SHA = "d" * 64

HOMEBREW_CUCKOO = """\
class Cuckoo < Formula
    desc "CLI Tool for GitLab CI and Kubernetes Deployments."
    url "<TODO>"
    sha256 "<TODO>"

    depends_on "go@1.14" => :build

    def install
        system "cd source && go build -v"
        bin.install "source/cuckoo" => "cuckoo"
    end

    test do
        cuckoo help
    end
end
"""

RENDERED_SOURCE = """\
class Cuckoo < Formula
  desc "CLI Tool for GitLab CI and Kubernetes Deployments."
  url "https://example.com/cuckoo-1.0.tar.gz"
  sha256 "dddddddddddddddddddddddddddddddddddddddddddddddddddddddddddddddd"

  depends_on "go@1.14" => :build

  def install
    system "cd source && go build -v"
    bin.install "source/cuckoo" => "cuckoo"
  end

  test do
    system "#{bin}/cuckoo", "help"
  end
end
"""


@pytest.fixture
def source_descriptor():
    return descriptor_from_mapping({
        "name": "cuckoo",
        "desc": "CLI Tool for GitLab CI and Kubernetes Deployments.",
        "url": "https://example.com/cuckoo-1.0.tar.gz",
        "sha256": SHA,
        "depends_on": ["go@1.14"],
        "install": {
            "build_from_source": {"workdir": "source", "command": "go build -v", "output": "source/cuckoo"},
        },
    })


@pytest.fixture
def prebuilt_descriptor():
    return descriptor_from_mapping({
        "name": "cuckoo",
        "desc": "CLI Tool for GitLab CI and Kubernetes Deployments.",
        "url": "https://circleci.com/api/v1.1/project/github/borchero/cuckoo/42/artifacts/0/cuckoo",
        "sha256": SHA,
        "install": {"install_prebuilt": {"artifact": "cuckoo"}},
    })


# --- Parsing ---

def test_parses_the_homebrew_cuckoo_formula():
    assert parse_formula(HOMEBREW_CUCKOO) == {
        "name": "cuckoo",
        "desc": "CLI Tool for GitLab CI and Kubernetes Deployments.",
        "binary": "cuckoo",
        "url": "<TODO>",
        "sha256": "<TODO>",
        "depends_on": [{"name": "go", "version": "1.14"}],
        "install": {
            "build_from_source": {"workdir": "source", "command": "go build -v", "output": "source/cuckoo", "env": {}},
        },
        "test": {"args": ["help"]},
    }


def test_parsed_formula_with_real_values_is_a_valid_descriptor():
    text = HOMEBREW_CUCKOO.replace('"<TODO>"', '"https://example.com/cuckoo-1.0.tar.gz"', 1)
    text = text.replace('"<TODO>"', f'"{SHA}"', 1)

    descriptor = descriptor_from_mapping(parse_formula(text))

    assert descriptor.variant == "build_from_source"
    assert [str(d) for d in descriptor.build_dependencies] == ["go@1.14"]


def test_prebuilt_formula_without_build_command():
    text = """\
class Cuckoo < Formula
  desc "CLI Tool for GitLab CI and Kubernetes Deployments."
  url "https://circleci.com/api/v1.1/project/github/borchero/cuckoo/$CIRCLE_BUILD_NUM/artifacts/0/cuckoo"
  sha256 "$ARTIFACT_SHA256"

  def install
    bin.install "cuckoo"
  end

  test do
    system bin/"cuckoo", "help"
  end
end
"""
    mapping = parse_formula(text)

    assert mapping["install"] == {"install_prebuilt": {"artifact": "cuckoo"}}
    assert mapping["depends_on"] == []
    assert mapping["url"].endswith("/$CIRCLE_BUILD_NUM/artifacts/0/cuckoo")
    assert mapping["test"] == {"args": ["help"]}


def test_file_name_overrides_the_class_name():
    assert parse_formula(HOMEBREW_CUCKOO, name="cuckoo-head")["name"] == "cuckoo-head"


@pytest.mark.parametrize("replace, with_, reason", [
    ('depends_on "go@1.14" => :build', 'depends_on "go@1.14"', "build-time"),
    ("    test do\n        cuckoo help\n    end\n", "", None),
    ("cuckoo help", 'system "ls", "-la"', "test must run"),
    ('system "cd source && go build -v"', 'system "cd source && go build -v"\n        system "strip cuckoo"', "more than one"),
    ('system "cd source && go build -v"', 'system "cd source && go build -v && strip cuckoo"', "line 9: shell syntax"),
    ('system "cd source && go build -v"', 'system "go build -v > build.log"', "shell syntax"),
    ('system "cd source && go build -v"', 'system "go", "build", "-o", "cuckoo|tee"', "shell syntax"),
    ('bin.install "source/cuckoo" => "cuckoo"', 'prefix.install "source"', "line"),
    ("class Cuckoo < Formula", "module Cuckoo", "class"),
])
def test_unsupported_syntax_is_rejected(replace, with_, reason):
    text = HOMEBREW_CUCKOO.replace(replace, with_)
    if reason is None:
        # No test block is fine; the default smoke check applies.
        assert "test" not in parse_formula(text)
        return
    with pytest.raises(DescriptorError, match=reason):
        parse_formula(text)


def test_unclosed_formula_is_rejected():
    with pytest.raises(DescriptorError, match="not closed"):
        parse_formula(HOMEBREW_CUCKOO.rstrip().rsplit("\n", 1)[0])


# --- Rendering ---

def test_renders_build_from_source(source_descriptor):
    assert render_formula(source_descriptor) == RENDERED_SOURCE


def test_renders_prebuilt_without_build_steps(prebuilt_descriptor):
    text = render_formula(prebuilt_descriptor)

    assert "depends_on" not in text
    assert "system \"cd" not in text
    assert 'bin.install "cuckoo" => "cuckoo"' in text
    assert 'url "https://circleci.com/api/v1.1/project/github/borchero/cuckoo/42/artifacts/0/cuckoo"' in text


@pytest.mark.parametrize("fixture_name", ["source_descriptor", "prebuilt_descriptor"])
def test_rendered_formula_parses_back_to_the_same_descriptor(request, fixture_name):
    descriptor = request.getfixturevalue(fixture_name)
    assert descriptor_from_mapping(parse_formula(render_formula(descriptor))) == descriptor


def test_quotes_are_escaped(source_descriptor):
    mapping = parse_formula(render_formula(source_descriptor).replace(
        "CLI Tool for GitLab CI", 'CLI \\"Tool\\" for GitLab CI'
    ))
    assert mapping["desc"] == 'CLI "Tool" for GitLab CI and Kubernetes Deployments.'


@pytest.mark.parametrize("name, class_name", [
    ("cuckoo", "Cuckoo"),
    ("cuckoo-bin", "CuckooBin"),
    ("go@1.14", "GoAT114"),
])
def test_formula_class_name(name, class_name):
    assert formula_class_name(name) == class_name
