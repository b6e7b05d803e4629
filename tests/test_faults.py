"""
Tests for the fault taxonomy.
"""

import pytest

from inquest.faults import (
    BadRequest,
    ClientDisconnect,
    ConfigInvalidFault,
    CSRFViolationFault,
    Fault,
    FaultDomain,
    FilesystemFault,
    InvalidHost,
    PayloadTooLarge,
    RequestFault,
    Severity,
)


class TestFault:

    def test_explicit_fields(self):
        fault = Fault(code="X", message="boom", domain=FaultDomain.SYSTEM)
        assert str(fault) == "[X] boom"
        assert fault.severity == Severity.FATAL
        assert fault.public is False
        assert fault.to_dict() == {
            "code": "X",
            "message": "boom",
            "domain": "system",
            "severity": "fatal",
            "retryable": False,
            "public": False,
            "metadata": {},
        }

    def test_missing_code(self):
        with pytest.raises(TypeError):
            Fault(message="boom", domain=FaultDomain.SYSTEM)

    def test_domain_equality(self):
        assert FaultDomain.IO == "io"
        assert FaultDomain.IO == FaultDomain("io")
        assert FaultDomain.IO != FaultDomain.SECURITY


class TestRequestFaults:

    def test_defaults_from_class(self):
        fault = PayloadTooLarge()
        assert fault.code == "PAYLOAD_TOO_LARGE"
        assert fault.message == "Payload too large"
        assert fault.domain == FaultDomain.IO
        assert fault.public is True

    def test_message_and_metadata(self):
        fault = BadRequest("Too many form fields", max_allowed=3, actual=4)
        assert fault.message == "Too many form fields"
        assert fault.metadata == {"max_allowed": 3, "actual": 4}

    def test_hierarchy(self):
        assert issubclass(InvalidHost, BadRequest)
        assert issubclass(BadRequest, RequestFault)
        assert isinstance(InvalidHost(), Fault)

    def test_base_fault_usable(self):
        assert RequestFault().code == "REQUEST_FAULT"

    def test_client_disconnect_is_warning(self):
        assert ClientDisconnect().severity == Severity.WARN


class TestDomainFaults:

    def test_config_invalid(self):
        fault = ConfigInvalidFault("max_body_size", "must be positive")
        assert fault.code == "CONFIG_INVALID"
        assert fault.domain == FaultDomain.CONFIG
        assert "max_body_size" in fault.message

    def test_filesystem(self):
        fault = FilesystemFault("move", "/tmp/x", "denied")
        assert fault.metadata["operation"] == "move"
        assert fault.domain == FaultDomain.IO

    def test_csrf_violation(self):
        fault = CSRFViolationFault("CSRF token missing")
        assert fault.reason == "CSRF token missing"
        assert fault.severity == Severity.WARN
        assert fault.public is True
