"""Unit tests for PowerDNSBackend."""

from unittest.mock import MagicMock, patch

import pytest
import requests

from dns_roundrobin.backends import (
    PowerDNSBackend,
    ZoneFileBackend,
    create_dns_backend,
    record_fqdn,
)
from dns_roundrobin.errors import BackendOperationError, ConfigError
from dns_roundrobin.models import RecordFamily

ZONE_URL = "http://pdns.local:8081/api/v1/servers/localhost/zones/contoso.com."


def make_backend() -> PowerDNSBackend:
    return PowerDNSBackend(url="http://pdns.local:8081/", api_key="secret")


def zone_response(rrsets) -> MagicMock:
    response = MagicMock()
    response.status_code = 200
    response.raise_for_status = MagicMock()
    response.json.return_value = {"name": "contoso.com.", "rrsets": rrsets}
    return response


WEB_A = {
    "name": "web.contoso.com.",
    "type": "A",
    "ttl": 60,
    "records": [
        {"content": "10.0.0.1", "disabled": False},
        {"content": "10.0.0.2", "disabled": False},
        {"content": "10.0.0.3", "disabled": True},
    ],
}


def test_record_fqdn() -> None:
    assert record_fqdn("contoso.com", "web") == "web.contoso.com."
    assert record_fqdn("contoso.com.", "@") == "contoso.com."
    assert record_fqdn("contoso.com", "web.contoso.com.") == "web.contoso.com."


def test_api_key_header_is_set() -> None:
    assert make_backend()._session.headers["X-API-Key"] == "secret"


class TestPowerDNSZoneExists:
    """Tests for zone lookup."""

    def test_zone_exists(self) -> None:
        backend = make_backend()
        with patch.object(backend._session, "get") as mock_get:
            mock_get.return_value = zone_response([])

            assert backend.zone_exists("contoso.com") is True
            mock_get.assert_called_once_with(ZONE_URL, params={"rrsets": "false"}, timeout=5.0)

    def test_zone_missing(self) -> None:
        backend = make_backend()
        with patch.object(backend._session, "get") as mock_get:
            response = MagicMock()
            response.status_code = 404
            mock_get.return_value = response

            assert backend.zone_exists("contoso.com") is False

    def test_zone_lookup_transport_error_raises(self) -> None:
        backend = make_backend()
        with patch.object(backend._session, "get") as mock_get:
            mock_get.side_effect = requests.exceptions.ConnectionError("refused")

            with pytest.raises(BackendOperationError):
                backend.zone_exists("contoso.com")


class TestPowerDNSListRecords:
    """Tests for reading rrsets."""

    def test_list_records_ignores_disabled_and_other_names(self) -> None:
        backend = make_backend()
        other = {"name": "api.contoso.com.", "type": "A", "ttl": 60, "records": [{"content": "10.9.9.9"}]}
        with patch.object(backend._session, "get") as mock_get:
            mock_get.return_value = zone_response([WEB_A, other])

            assert backend.list_records("contoso.com", "web", RecordFamily.A) == {
                "10.0.0.1",
                "10.0.0.2",
            }

    def test_list_records_missing_rrset_is_empty(self) -> None:
        backend = make_backend()
        with patch.object(backend._session, "get") as mock_get:
            mock_get.return_value = zone_response([WEB_A])

            assert backend.list_records("contoso.com", "web", RecordFamily.AAAA) == set()

    def test_list_records_error_raises(self) -> None:
        backend = make_backend()
        with patch.object(backend._session, "get") as mock_get:
            mock_get.side_effect = requests.exceptions.RequestException("Network error")

            with pytest.raises(BackendOperationError):
                backend.list_records("contoso.com", "web", RecordFamily.A)


class TestPowerDNSChanges:
    """Tests for add_record / remove_record rrset patches."""

    def test_add_record_replaces_rrset_with_new_member(self) -> None:
        backend = make_backend()
        with patch.object(backend._session, "get") as mock_get, patch.object(
            backend._session, "patch"
        ) as mock_patch:
            mock_get.return_value = zone_response([WEB_A])
            mock_patch.return_value = MagicMock()

            backend.add_record("contoso.com", "web", RecordFamily.A, "10.0.0.4", 120)

            mock_patch.assert_called_once()
            rrset = mock_patch.call_args.kwargs["json"]["rrsets"][0]
            assert rrset["name"] == "web.contoso.com."
            assert rrset["type"] == "A"
            assert rrset["ttl"] == 120
            assert rrset["changetype"] == "REPLACE"
            assert [r["content"] for r in rrset["records"]] == [
                "10.0.0.1",
                "10.0.0.2",
                "10.0.0.3",
                "10.0.0.4",
            ]

    def test_add_record_already_present_is_noop(self) -> None:
        backend = make_backend()
        with patch.object(backend._session, "get") as mock_get, patch.object(
            backend._session, "patch"
        ) as mock_patch:
            mock_get.return_value = zone_response([WEB_A])

            backend.add_record("contoso.com", "web", RecordFamily.A, "10.0.0.1", 60)

            mock_patch.assert_not_called()

    def test_add_record_enables_disabled_member(self) -> None:
        backend = make_backend()
        with patch.object(backend._session, "get") as mock_get, patch.object(
            backend._session, "patch"
        ) as mock_patch:
            mock_get.return_value = zone_response([WEB_A])
            mock_patch.return_value = MagicMock()

            backend.add_record("contoso.com", "web", RecordFamily.A, "10.0.0.3", 60)

            mock_patch.assert_called_once()
            rrset = mock_patch.call_args.kwargs["json"]["rrsets"][0]
            assert rrset["changetype"] == "REPLACE"
            assert rrset["records"] == [
                {"content": "10.0.0.1", "disabled": False},
                {"content": "10.0.0.2", "disabled": False},
                {"content": "10.0.0.3", "disabled": False},
            ]

    def test_remove_record_keeps_remaining_members(self) -> None:
        backend = make_backend()
        with patch.object(backend._session, "get") as mock_get, patch.object(
            backend._session, "patch"
        ) as mock_patch:
            mock_get.return_value = zone_response([WEB_A])
            mock_patch.return_value = MagicMock()

            backend.remove_record("contoso.com", "web", RecordFamily.A, "10.0.0.2")

            rrset = mock_patch.call_args.kwargs["json"]["rrsets"][0]
            assert rrset["changetype"] == "REPLACE"
            assert rrset["ttl"] == 60
            assert [r["content"] for r in rrset["records"]] == ["10.0.0.1", "10.0.0.3"]

    def test_remove_last_record_deletes_rrset(self) -> None:
        backend = make_backend()
        single = {
            "name": "web.contoso.com.",
            "type": "AAAA",
            "ttl": 60,
            "records": [{"content": "2001:db8::1", "disabled": False}],
        }
        with patch.object(backend._session, "get") as mock_get, patch.object(
            backend._session, "patch"
        ) as mock_patch:
            mock_get.return_value = zone_response([single])
            mock_patch.return_value = MagicMock()

            backend.remove_record("contoso.com", "web", RecordFamily.AAAA, "2001:db8::1")

            mock_patch.assert_called_once_with(
                ZONE_URL,
                json={
                    "rrsets": [
                        {"name": "web.contoso.com.", "type": "AAAA", "changetype": "DELETE"}
                    ]
                },
                timeout=5.0,
            )

    def test_patch_failure_raises(self) -> None:
        backend = make_backend()
        with patch.object(backend._session, "get") as mock_get, patch.object(
            backend._session, "patch"
        ) as mock_patch:
            mock_get.return_value = zone_response([])
            mock_patch.side_effect = requests.exceptions.HTTPError("422 Unprocessable Entity")

            with pytest.raises(BackendOperationError):
                backend.add_record("contoso.com", "web", RecordFamily.A, "10.0.0.1", 60)


class TestBackendFactory:
    """Tests for create_dns_backend."""

    def test_create_powerdns(self) -> None:
        assert isinstance(create_dns_backend("powerdns", "http://pdns:8081"), PowerDNSBackend)

    def test_create_file(self, tmp_path) -> None:
        backend = create_dns_backend("FILE", str(tmp_path / "zones.json"))
        assert isinstance(backend, ZoneFileBackend)

    def test_unsupported_backend(self) -> None:
        with pytest.raises(ConfigError):
            create_dns_backend("route53", "https://example")
