"""Persistence stores for approval requests and audit entries."""

from approval_kernel.stores.audit import InMemoryAuditSink, SqlAuditSink
from approval_kernel.stores.base import ApprovalRequestStore, AuditSink
from approval_kernel.stores.memory import InMemoryApprovalStore
from approval_kernel.stores.sql import SqlApprovalStore

__all__ = [
    "ApprovalRequestStore",
    "AuditSink",
    "InMemoryApprovalStore",
    "InMemoryAuditSink",
    "SqlApprovalStore",
    "SqlAuditSink",
]
