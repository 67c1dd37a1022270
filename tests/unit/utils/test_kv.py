"""Tests for key=value argument parsing."""

import pytest

from tritoncloud.exceptions import TritonError, UsageError
from tritoncloud.utils.kv import kv_to_obj, metadata_from_args, tags_from_args
from tritoncloud.utils.volumes import parse_disk_size, parse_volume_size


class TestKvToObj:
    """Test the generic key=value parser."""

    def test_type_conversion(self):
        """Test JSON-looking values are decoded."""
        assert kv_to_obj(["a=1", "b=true", "c=hello", "d=[1,2]"]) == {
            "a": 1,
            "b": True,
            "c": "hello",
            "d": [1, 2],
        }

    def test_string_hint_skips_conversion(self):
        """Test keys hinted as strings stay strings."""
        assert kv_to_obj(["version=1.0"], type_hints={"version": "string"}) == {"version": "1.0"}

    def test_disable_type_conversions(self):
        """Test all values can be kept as strings."""
        assert kv_to_obj(["a=1"], disable_type_conversions=True) == {"a": "1"}

    def test_value_may_contain_equals(self):
        """Test only the first '=' separates key and value."""
        assert kv_to_obj(["rule=FROM a TO b ALLOW tcp PORT 22 x=y"]) == {
            "rule": "FROM a TO b ALLOW tcp PORT 22 x=y"
        }

    def test_dotted_keys_nest(self):
        """Test dotted keys nest one level unless disabled."""
        assert kv_to_obj(["tags.role=db", "tags.tier=2"]) == {"tags": {"role": "db", "tier": 2}}
        assert kv_to_obj(["tags.role=db"], disable_dotted=True) == {"tags.role": "db"}

    def test_empty_value(self):
        """Test 'key=' maps to None unless empty values are refused."""
        assert kv_to_obj(["a="]) == {"a": None}
        with pytest.raises(UsageError):
            kv_to_obj(["a="], fail_on_empty_value=True)

    @pytest.mark.parametrize("pair", ["novalue", "=1"])
    def test_malformed(self, pair):
        """Test pairs without a key or '=' are rejected."""
        with pytest.raises(UsageError):
            kv_to_obj([pair])

    def test_valid_keys(self):
        """Test keys outside valid_keys are rejected."""
        with pytest.raises(UsageError, match="invalid key"):
            kv_to_obj(["bogus=1"], valid_keys=["name"])

    def test_file_value(self, tmp_path):
        """Test '@file' values are read, JSON-decoded when possible."""
        (tmp_path / "acl.json").write_text('["a", "b"]')
        (tmp_path / "eula.txt").write_text("plain text")
        assert kv_to_obj([f"acl=@{tmp_path}/acl.json", f"eula=@{tmp_path}/eula.txt"]) == {
            "acl": ["a", "b"],
            "eula": "plain text",
        }


class TestTagsAndMetadata:
    """Test tag and metadata options."""

    def test_tags_scalars_only(self):
        """Test tag values are coerced scalars."""
        assert tags_from_args(["a=1", "b=true", "c=1.5", "d=x"]) == {"a": 1, "b": True, "c": 1.5, "d": "x"}

    def test_tags_non_finite_stay_strings(self):
        """Test values like 'inf' and 'nan' are not coerced to floats."""
        assert tags_from_args(["a=inf", "b=nan"]) == {"a": "inf", "b": "nan"}

    def test_tags_json_object(self):
        """Test a JSON object option adds several tags."""
        assert tags_from_args(['{"a": "b", "c": 2}']) == {"a": "b", "c": 2}

    def test_tags_json_rejects_nested(self):
        """Test nested values are refused."""
        with pytest.raises(UsageError, match="must be one of string, number, boolean"):
            tags_from_args(['{"a": {"b": 1}}'])

    def test_tags_bad_json(self):
        """Test broken JSON is reported."""
        with pytest.raises(TritonError, match="not valid JSON"):
            tags_from_args(["{nope"])

    def test_tags_from_file(self, tmp_path):
        """Test '@file' holds key=value lines."""
        path = tmp_path / "tags.txt"
        path.write_text("a=1\n\nb=two\n")
        assert tags_from_args([f"@{path}"]) == {"a": 1, "b": "two"}

    def test_later_value_wins(self):
        """Test a repeated key keeps the last value."""
        assert tags_from_args(["a=1", "a=2"]) == {"a": 2}

    def test_metadata_files_and_script(self, tmp_path):
        """Test -M KEY=FILE and --script read file contents."""
        motd = tmp_path / "motd"
        motd.write_text("hello\n")
        script = tmp_path / "setup.sh"
        script.write_text("#!/bin/sh\necho hi\n")

        metadata = metadata_from_args(["env=prod"], [f"motd={motd}"], str(script))
        assert metadata == {"env": "prod", "motd": "hello\n", "user-script": "#!/bin/sh\necho hi\n"}

    def test_missing_file(self, tmp_path):
        """Test a missing file is an error."""
        with pytest.raises(TritonError, match="not an existing file"):
            metadata_from_args([], [f"motd={tmp_path}/nope"])


class TestParseVolumeSize:
    """Test human volume sizes."""

    @pytest.mark.parametrize("size,expected", [("20G", 20480), ("20g", 20480), ("512M", 512), ("512", 512)])
    def test_valid(self, size, expected):
        """Test G multiplies by 1024 and M or no suffix is mebibytes."""
        assert parse_volume_size(size) == expected

    @pytest.mark.parametrize("size", ["", "0", "0G", "-1G", "1.5G", "20T", "G", "20 G", "20G\n", " 20G"])
    def test_invalid(self, size):
        """Test anything else is a usage error."""
        with pytest.raises(UsageError, match="invalid volume size"):
            parse_volume_size(size)


class TestParseDiskSize:
    """Test instance disk sizes."""

    def test_mebibytes_and_remaining(self):
        """Test a plain number is MiB and "remaining" passes through."""
        assert parse_disk_size("2048") == 2048
        assert parse_disk_size("remaining") == "remaining"

    @pytest.mark.parametrize("size", ["", "0", "2G", "1.5", "Remaining", "2048\n"])
    def test_invalid(self, size):
        """Test suffixes and other words are rejected."""
        with pytest.raises(UsageError, match="invalid disk size"):
            parse_disk_size(size)
