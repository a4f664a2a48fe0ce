"""
Property-based tests for the hosts file editor.

Covers idempotent add, removal of two-field mappings only, preservation of
every other line, and error reporting for unreadable files.
"""

import os
import tempfile
from pathlib import Path

import pytest
from hypothesis import given, settings, assume
from hypothesis import strategies as st

from site_provisioner.exceptions import HostsFileError, ProvisionerError
from site_provisioner.hosts_file import HostsFileEditor
from site_provisioner.models import HostsEntry


# Strategies for generating valid test data

@st.composite
def hostname_strategy(draw) -> str:
    """Generate valid lowercase hostnames."""
    labels = draw(st.lists(
        st.text(alphabet=st.sampled_from("abcdefghijklmnopqrstuvwxyz0123456789"), min_size=1, max_size=12),
        min_size=1,
        max_size=3,
    ))
    tld = draw(st.sampled_from(["com", "net", "local", "test"]))
    return ".".join(labels + [tld])


@st.composite
def ip_strategy(draw) -> str:
    """Generate IPv4 addresses."""
    octets = draw(st.lists(st.integers(min_value=0, max_value=255), min_size=4, max_size=4))
    return ".".join(str(o) for o in octets)


@st.composite
def unrelated_line_strategy(draw) -> str:
    """Generate comment, blank and foreign-mapping lines with their line endings."""
    kind = draw(st.sampled_from(["comment", "blank", "mapping", "aliases"]))
    ending = draw(st.sampled_from(["\n", "\r\n"]))
    if kind == "comment":
        text = draw(st.text(
            alphabet=st.sampled_from("abcdefghijklmnopqrstuvwxyz0123456789 .#-"),
            max_size=30,
        ))
        return f"# {text}{ending}"
    if kind == "blank":
        return draw(st.sampled_from(["", "   ", "\t"])) + ending
    if kind == "mapping":
        return f"{draw(ip_strategy())}\t{draw(hostname_strategy())}{ending}"
    return f"{draw(ip_strategy())} {draw(hostname_strategy())} {draw(hostname_strategy())}{ending}"


def write_hosts(directory: str, content: str) -> Path:
    path = Path(directory) / "hosts"
    with open(path, "w", encoding="ascii", newline="") as f:
        f.write(content)
    return path


def read_hosts(path: Path) -> str:
    with open(path, "r", encoding="ascii", newline="") as f:
        return f.read()


class TestAddIdempotenceProperty:
    """Adding the same mapping twice produces the same file as adding it once."""

    @given(
        lines=st.lists(unrelated_line_strategy(), max_size=10),
        ip=ip_strategy(),
        hostname=hostname_strategy(),
    )
    @settings(max_examples=100, deadline=None)
    def test_add_is_idempotent(self, lines: list[str], ip: str, hostname: str) -> None:
        """
        *For any* hosts file, add followed by add SHALL leave the file
        byte-identical to a single add, with exactly one mapping for the
        hostname.
        """
        with tempfile.TemporaryDirectory() as tmpdir:
            path = write_hosts(tmpdir, "".join(lines))
            editor = HostsFileEditor()

            editor.add(path, ip, hostname)
            after_first = read_hosts(path)
            editor.add(path, ip, hostname)
            after_second = read_hosts(path)

            assert after_first == after_second
            matches = [e for e in editor.entries(path) if e.hostname == hostname]
            assert matches == [HostsEntry(ip=ip, hostname=hostname)]

    @given(
        ip=ip_strategy(),
        new_ip=ip_strategy(),
        hostname=hostname_strategy(),
    )
    @settings(max_examples=50, deadline=None)
    def test_add_replaces_previous_mapping(self, ip: str, new_ip: str, hostname: str) -> None:
        """*For any* existing mapping, add SHALL replace it rather than add a second one."""
        with tempfile.TemporaryDirectory() as tmpdir:
            path = write_hosts(tmpdir, f"{ip} {hostname}\n")

            HostsFileEditor().add(path, new_ip, hostname)

            assert read_hosts(path) == f"{new_ip}\t\t{hostname}{os.linesep}"


class TestLinePreservationProperty:
    """Lines that are not two-field mappings for the hostname are never touched."""

    @given(
        lines=st.lists(unrelated_line_strategy(), min_size=1, max_size=10),
        hostname=hostname_strategy(),
    )
    @settings(max_examples=100, deadline=None)
    def test_unrelated_lines_survive_in_order(self, lines: list[str], hostname: str) -> None:
        """
        *For any* hosts file, remove SHALL keep every line that is not a
        two-field mapping for the hostname, with content and order intact.
        """
        assume(all(len(line.split()) != 2 or line.split()[1] != hostname for line in lines))
        with tempfile.TemporaryDirectory() as tmpdir:
            original = "".join(lines)
            path = write_hosts(tmpdir, original)
            editor = HostsFileEditor()

            editor.add(path, "127.0.0.1", hostname)
            assert read_hosts(path).startswith(original)

            assert editor.remove(path, hostname) is True
            assert read_hosts(path) == original

    @given(hostname=hostname_strategy())
    @settings(max_examples=50, deadline=None)
    def test_inline_comment_line_is_never_removed(self, hostname: str) -> None:
        """
        *For any* hostname, a mapping line carrying an inline comment SHALL
        survive both add and remove.
        """
        commented = f"127.0.0.1 {hostname} # added by hand\n"
        with tempfile.TemporaryDirectory() as tmpdir:
            path = write_hosts(tmpdir, commented)
            editor = HostsFileEditor()

            assert editor.remove(path, hostname) is False
            editor.add(path, "127.0.0.1", hostname)
            editor.remove(path, hostname)

            assert read_hosts(path) == commented

    @given(
        hostname=hostname_strategy(),
        prefix=st.sampled_from(["#", "#\t", "# ", "  #", "\t# "]),
    )
    @settings(max_examples=50, deadline=None)
    def test_commented_out_mapping_is_never_removed(self, hostname: str, prefix: str) -> None:
        """
        *For any* hostname, a commented-out line naming it SHALL survive add
        and remove unchanged.
        """
        commented = f"{prefix}{hostname}\n"
        content = f"{commented}127.0.0.1 localhost\n"
        with tempfile.TemporaryDirectory() as tmpdir:
            path = write_hosts(tmpdir, content)
            editor = HostsFileEditor()

            editor.add(path, "127.0.0.1", hostname)

            assert read_hosts(path) == (
                f"{content}127.0.0.1\t\t{hostname}{os.linesep}"
            )
            assert editor.remove(path, hostname) is True
            assert read_hosts(path) == content
            assert editor.remove(path, hostname) is False

    @given(hostname=hostname_strategy(), other=hostname_strategy())
    @settings(max_examples=50, deadline=None)
    def test_remove_matches_hostname_field_only(self, hostname: str, other: str) -> None:
        """A hostname appearing in the address column or as a prefix SHALL NOT match."""
        assume(hostname != other)
        content = (
            f"{hostname} {other}\n"
            f"127.0.0.1 {hostname}.extra\n"
            f"127.0.0.1 {other}\n"
        )
        with tempfile.TemporaryDirectory() as tmpdir:
            path = write_hosts(tmpdir, content)

            assert HostsFileEditor().remove(path, hostname) is False
            assert read_hosts(path) == content


class TestHostsFileEditorBehavior:
    """Example-based tests for individual editor behaviors."""

    def test_remove_without_match_leaves_file_untouched(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = write_hosts(tmpdir, "127.0.0.1 localhost\n")
            before = path.stat().st_mtime_ns

            assert HostsFileEditor().remove(path, "demo.example.com") is False
            assert path.stat().st_mtime_ns == before

    def test_remove_drops_every_matching_line(self) -> None:
        content = (
            "127.0.0.1 demo.example.com\n"
            "# keep me\n"
            "10.0.0.1\tdemo.example.com\r\n"
            "127.0.0.1 localhost\n"
        )
        with tempfile.TemporaryDirectory() as tmpdir:
            path = write_hosts(tmpdir, content)

            assert HostsFileEditor().remove(path, "demo.example.com") is True
            assert read_hosts(path) == "# keep me\n127.0.0.1 localhost\n"

    def test_add_terminates_last_line(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = write_hosts(tmpdir, "127.0.0.1 localhost")

            HostsFileEditor().add(path, "127.0.0.1", "demo.example.com")

            assert read_hosts(path) == (
                f"127.0.0.1 localhost{os.linesep}127.0.0.1\t\tdemo.example.com{os.linesep}"
            )

    def test_add_to_empty_file(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = write_hosts(tmpdir, "")

            entry = HostsFileEditor().add(path, "127.0.0.1", "demo.example.com")

            assert entry == HostsEntry("127.0.0.1", "demo.example.com")
            assert read_hosts(path) == f"127.0.0.1\t\tdemo.example.com{os.linesep}"

    def test_entries_lists_two_field_mappings(self) -> None:
        content = (
            "# comment\n"
            "127.0.0.1 localhost\n"
            "127.0.0.1 a.local b.local\n"
            "  10.0.0.2\t\tc.local  \n"
        )
        with tempfile.TemporaryDirectory() as tmpdir:
            path = write_hosts(tmpdir, content)

            assert HostsFileEditor().entries(path) == [
                HostsEntry("127.0.0.1", "localhost"),
                HostsEntry("10.0.0.2", "c.local"),
            ]

    def test_missing_file_raises_io_error(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "missing"

            with pytest.raises(HostsFileError) as exc_info:
                HostsFileEditor().add(path, "127.0.0.1", "demo.example.com")

            assert isinstance(exc_info.value, OSError)
            assert isinstance(exc_info.value, ProvisionerError)
            assert exc_info.value.code == "not_found"
            assert not path.exists()

    def test_non_ascii_content_is_a_read_error(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "hosts"
            path.write_bytes("127.0.0.1 bücher.local\n".encode("utf-8"))

            with pytest.raises(HostsFileError) as exc_info:
                HostsFileEditor().remove(path, "demo.example.com")

            assert exc_info.value.code == "read_error"

    @pytest.mark.skipif(os.name == "nt", reason="POSIX permission bits")
    def test_rewrite_keeps_file_mode(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = write_hosts(tmpdir, "127.0.0.1 localhost\n")
            os.chmod(path, 0o644)

            HostsFileEditor().add(path, "127.0.0.1", "demo.example.com")

            assert path.stat().st_mode & 0o777 == 0o644
            assert sorted(p.name for p in Path(tmpdir).iterdir()) == ["hosts"]
