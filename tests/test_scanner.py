from conftest import build_artifact, module_source

from parrepo.services.scanner.manifest import ManifestReader
from parrepo.services.scanner.packages import PackageDeclarationScanner, scan_lines
from parrepo.services.scanner.scripts import ScriptDirectoryScanner, is_script_path


def lines(text):
    return text.splitlines(keepends=True)


def test_scan_lines_finds_declarations_and_version():
    names, version = scan_lines(lines(
        "package Foo::Bar;\n"
        "our $VERSION = '1.02';\n"
        "package Foo::Bar::Helper { 1 }\n"
    ))
    assert names == ["Foo::Bar", "Foo::Bar::Helper"]
    assert version == "1.02"


def test_scan_lines_skips_documentation_blocks():
    names, _ = scan_lines(lines(
        "package Real;\n"
        "=head1 SYNOPSIS\n"
        "\n"
        "package Documented;\n"
        "=cut\n"
        "package AfterDocs;\n"
    ))
    assert names == ["Real", "AfterDocs"]


def test_scan_lines_stops_at_end_of_code():
    names, _ = scan_lines(lines("package Kept;\n__END__\npackage Ignored;\n"))
    assert names == ["Kept"]
    names, _ = scan_lines(lines("package Kept;\n__DATA__\npackage Ignored;\n"))
    assert names == ["Kept"]


def test_scan_lines_ignores_comments_and_invalid_names():
    names, _ = scan_lines(lines(
        "# package Commented;\n"
        "package main;\n"
        "package _Private;\n"
        "package Trailing::;\n"
        "package Old'Style;\n"
    ))
    assert names == ["Old::Style"]


def test_scan_lines_version_forms():
    assert scan_lines(lines("$VERSION = 1.10;\n"))[1] == "1.10"
    assert scan_lines(lines("our $VERSION = qv('1.2.3');\n"))[1] == "1.2.3"
    assert scan_lines(lines("$Foo::VERSION = \"0.5\";\n"))[1] == "0.5"
    assert scan_lines(lines("if ($VERSION == 2) {}\n"))[1] is None
    assert scan_lines(lines("=pod\n$VERSION = '9';\n=cut\n"))[1] is None


def test_package_scanner_prefers_higher_version(tmp_path):
    artifact = build_artifact(
        tmp_path / "Multi-1.0-linux-5.8.7.par",
        {
            "lib/A.pm": module_source("Shared", "1.9"),
            "lib/B.pm": module_source("Shared", "1.10"),
            "lib/C.pm": module_source("Shared"),
            "lib/D.PM": module_source("Upper", "0.1"),
            "README": "package NotPerl;\n",
        },
    )
    found = PackageDeclarationScanner().scan(artifact)
    assert set(found) == {"Shared", "Upper"}
    assert found["Shared"].version == "1.10"
    assert found["Shared"].file == "lib/B.pm"
    assert found["Upper"].file == "lib/D.PM"


def test_script_paths():
    assert is_script_path("script/tool")
    assert is_script_path("bin/tool")
    assert is_script_path("BIN/tool")
    assert not is_script_path("script/.hidden")
    assert not is_script_path("script/main.pl")
    assert not is_script_path("lib/tool")
    assert not is_script_path("tool")


def test_script_scanner(kit_artifact):
    found = ScriptDirectoryScanner().scan(kit_artifact)
    assert set(found) == {"kit-tool"}
    assert found["kit-tool"].version == "1.5"
    assert found["kit-tool"].file == "script/kit-tool"


def test_manifest_reader_uses_provides(tmp_path):
    artifact = build_artifact(
        tmp_path / "Kit-0.02-any_arch-any_version.par",
        {
            "META.yml": (
                "name: Kit\n"
                "provides:\n"
                "  Kit:\n"
                "    file: lib/Kit.pm\n"
                "    version: 1.10\n"
                "  Kit::Util:\n"
                "    file: lib/Kit/Util.pm\n"
                "  Kit::Bare: ~\n"
            ),
        },
    )
    provides = ManifestReader().read_provides(artifact)
    assert provides["Kit"].version == "1.10"
    assert provides["Kit"].file == "lib/Kit.pm"
    assert provides["Kit::Util"].version is None
    assert provides["Kit::Bare"].version is None


def test_manifest_reader_without_provides(tmp_path):
    no_meta = build_artifact(tmp_path / "a.par", {"lib/A.pm": module_source("A")})
    no_provides = build_artifact(tmp_path / "b.par", {"META.yml": "name: B\n"})
    broken = build_artifact(tmp_path / "c.par", {"META.yml": "provides: [unclosed\n"})
    malformed = build_artifact(tmp_path / "d.par", {"META.yml": "provides:\n  X:\n    - 1\n"})

    reader = ManifestReader()
    assert reader.read_provides(no_meta) is None
    assert reader.read_provides(no_provides) is None
    assert reader.read_provides(broken) is None
    assert reader.read_provides(malformed) is None
