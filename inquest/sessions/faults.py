"""
Inquest sessions - Fault definitions.

Session errors are structured Faults, not bare exceptions.
"""

from inquest.faults.core import Fault, Severity, FaultDomain


class SessionFault(Fault):
    """
    Base class for session-related faults.
    
    All session faults use FaultDomain.SECURITY.
    """
    
    domain = FaultDomain.SECURITY


class SessionNotActiveFault(SessionFault):
    """
    A component that needs session state was used without an active session.
    
    This is a host configuration error: the session must be resolved and
    activated before request processing touches it.
    """
    
    code = "SESSION_NOT_ACTIVE"
    message = "Session must be active"
    severity = Severity.FATAL
    public = False
    retryable = False
    
    def __init__(self, component: str | None = None, **kwargs):
        if component and "message" not in kwargs:
            kwargs["message"] = f"Session must be active to use {component}"
        super().__init__(**kwargs)
        self.component = component

