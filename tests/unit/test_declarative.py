"""Unit tests for declarative (YAML) descriptors."""

import pytest
import yaml

from cmp_consent.descriptors import BUILTIN_DESCRIPTOR_DIR, DeclarativeDescriptor, parse_descriptor_source
from cmp_consent.errors import MalformedDescriptorSource
from cmp_consent.models import CookieStorageSpec, LocalKeyStorageSpec

from fakes import FakePage


VALID_SOURCE = """
name: examplecmp
cookieName: [consent, consent_version]
selectors:
  presence: "#banner"
  acceptAll: ["#accept", ".accept-all"]
"""


class TestParseDescriptorSource:
    """Test validation of declarative data."""

    def test_single_values_become_lists(self):
        definition = parse_descriptor_source(VALID_SOURCE)

        assert definition.name == "examplecmp"
        assert definition.cookie_name == ["consent", "consent_version"]
        assert definition.selectors.presence == ["#banner"]
        assert definition.selectors.accept_all == ["#accept", ".accept-all"]
        assert definition.selectors.reject_all is None
        assert definition.timeout is None

    def test_mapping_source(self):
        definition = parse_descriptor_source({
            "name": "mapped",
            "cookieName": "consent",
            "selectors": {"presence": "#b", "acceptAll": "#a", "rejectAll": "#r"},
        })

        assert definition.cookie_name == ["consent"]
        assert definition.selectors.reject_all == ["#r"]

    @pytest.mark.parametrize("missing_field,data", [
        ("name", {"cookieName": "c", "selectors": {"presence": "#b", "acceptAll": "#a"}}),
        ("cookieName", {"name": "n", "selectors": {"presence": "#b", "acceptAll": "#a"}}),
        ("selectors.presence", {"name": "n", "cookieName": "c", "selectors": {"acceptAll": "#a"}}),
        ("selectors.acceptAll", {"name": "n", "cookieName": "c", "selectors": {"presence": "#b"}}),
    ])
    def test_missing_required_field(self, missing_field, data):
        with pytest.raises(MalformedDescriptorSource) as exc_info:
            parse_descriptor_source(data)

        assert missing_field in str(exc_info.value)

    def test_empty_cookie_name_is_missing(self):
        data = {"name": "n", "cookieName": "", "selectors": {"presence": "#b", "acceptAll": "#a"}}

        with pytest.raises(MalformedDescriptorSource, match="cookieName"):
            parse_descriptor_source(data)

    @pytest.mark.parametrize("data", [
        {"name": "n", "cookieName": 5, "selectors": {"presence": "#b", "acceptAll": "#a"}},
        {"name": "n", "cookieName": {"a": 1}, "selectors": {"presence": "#b", "acceptAll": "#a"}},
        {"name": "n", "cookieName": ["c", 7], "selectors": {"presence": "#b", "acceptAll": "#a"}},
        {"name": "n", "cookieName": "c", "selectors": {"presence": True, "acceptAll": "#a"}},
        {"name": "n", "cookieName": "c", "selectors": {"presence": "#b", "acceptAll": "#a", "rejectAll": 3}},
    ])
    def test_wrongly_typed_field_is_malformed(self, data):
        """Test values that are neither a string nor a list of strings are rejected."""
        with pytest.raises(MalformedDescriptorSource, match="Invalid descriptor"):
            parse_descriptor_source(data, origin="typed.yaml")

    def test_invalid_yaml(self):
        with pytest.raises(MalformedDescriptorSource, match="Failed to parse"):
            parse_descriptor_source("name: [unclosed", origin="broken.yaml")

    def test_non_mapping_source(self):
        with pytest.raises(MalformedDescriptorSource, match="mapping"):
            parse_descriptor_source("- just\n- a list\n")

    def test_negative_timeout_rejected(self):
        data = yaml.safe_load(VALID_SOURCE)
        data["timeout"] = -1

        with pytest.raises(MalformedDescriptorSource):
            parse_descriptor_source(data)

    def test_invalid_local_storage_entries(self):
        data = yaml.safe_load(VALID_SOURCE)
        data["localStorage"] = [{"value": "no key"}]

        with pytest.raises(MalformedDescriptorSource):
            parse_descriptor_source(data)


class TestDeclarativeDescriptor:
    """Test descriptors built from declarative data."""

    def test_consent_keys_match_cookie_field(self):
        """Test consent keys read back equal the source's cookie names."""
        descriptor = DeclarativeDescriptor(VALID_SOURCE)

        assert isinstance(descriptor.storage, CookieStorageSpec)
        assert descriptor.consent_keys == yaml.safe_load(VALID_SOURCE)["cookieName"]

    def test_consent_keys_match_local_storage_field(self, fixtures_dir):
        source = (fixtures_dir / "localstorage.yaml").read_text()
        descriptor = DeclarativeDescriptor(source)

        raw_entries = yaml.safe_load(source)["localStorage"]
        expected = [entry if isinstance(entry, str) else entry["key"] for entry in raw_entries]

        assert isinstance(descriptor.storage, LocalKeyStorageSpec)
        assert descriptor.consent_keys == expected

    def test_timeouts(self):
        descriptor = DeclarativeDescriptor(VALID_SOURCE, default_timeout_ms=750, attempt_timeout_ms=25)
        assert descriptor.timeout_ms == 750
        assert descriptor.attempt_timeout_ms == 25

        data = yaml.safe_load(VALID_SOURCE)
        data["timeout"] = 3000
        assert DeclarativeDescriptor(data, default_timeout_ms=750).timeout_ms == 3000

    def test_optional_capabilities_follow_selectors(self, fixtures_dir):
        multiple = DeclarativeDescriptor.create_from_path_sync(fixtures_dir / "multiple-cookie.yaml")
        assert multiple.has_capability("reject_all") is True
        assert multiple.has_capability("accept_default") is False

        local = DeclarativeDescriptor.create_from_path_sync(fixtures_dir / "localstorage.yaml")
        assert local.has_capability("reject_all") is False
        assert local.has_capability("accept_default") is True

    def test_tag_and_origin(self, fixtures_dir):
        path = fixtures_dir / "single-cookie.yaml"
        descriptor = DeclarativeDescriptor.create_from_path_sync(path)

        assert descriptor.tag == 'DeclarativeDescriptor (for "singlecookie")'
        assert descriptor.origin == str(path)

    def test_malformed_file(self, fixtures_dir):
        with pytest.raises(MalformedDescriptorSource) as exc_info:
            DeclarativeDescriptor.create_from_path_sync(fixtures_dir / "baddescriptor.yaml")

        assert "selectors.acceptAll" in str(exc_info.value)
        assert exc_info.value.source.endswith("baddescriptor.yaml")

    def test_unreadable_file(self, tmp_path):
        with pytest.raises(MalformedDescriptorSource, match="Failed to read"):
            DeclarativeDescriptor.create_from_path_sync(tmp_path / "missing.yaml")

    @pytest.mark.asyncio
    async def test_create_from_path(self, fixtures_dir):
        descriptor = await DeclarativeDescriptor.create_from_path(
            fixtures_dir / "multiple-cookie.yaml",
            attempt_timeout_ms=10,
        )

        assert descriptor.name == "multiplecookie"
        assert descriptor.presence_selectors == ["#legacy-banner", "#banner"]
        assert descriptor.timeout_ms == 150

    @pytest.mark.asyncio
    async def test_create_from_path_missing_file(self, tmp_path):
        with pytest.raises(MalformedDescriptorSource):
            await DeclarativeDescriptor.create_from_path(tmp_path / "missing.yaml")

    @pytest.mark.asyncio
    async def test_accepts_banner(self, fixtures_dir):
        """Test a declarative descriptor drives a page like any other."""
        page = FakePage()
        page.add_element("#banner")
        page.add_element("#accept", sets_cookies={"consent": "1", "consent_version": "2"})
        descriptor = await DeclarativeDescriptor.create_from_path(
            fixtures_dir / "multiple-cookie.yaml",
            attempt_timeout_ms=10,
        )

        assert await descriptor.is_cmp_active(page) is True
        await descriptor.accept_all(page)
        assert await descriptor.has_consent_data(page) is True


class TestBuiltinDescriptors:
    """Test the descriptors shipped with the package."""

    def test_all_builtin_descriptors_load(self):
        paths = sorted(BUILTIN_DESCRIPTOR_DIR.glob("*.yaml"))
        assert paths

        names = [DeclarativeDescriptor.create_from_path_sync(path).name for path in paths]
        assert len(names) == len(set(names))
        assert "onetrust" in names

    def test_onetrust_cookies(self):
        descriptor = DeclarativeDescriptor.create_from_path_sync(BUILTIN_DESCRIPTOR_DIR / "onetrust.yaml")
        assert descriptor.consent_keys == ["OptanonAlertBoxClosed", "OptanonConsent"]
