"""
Approval kernel: domain types, exceptions, structured logging and
persistence for the purchase-order approval engine.
"""
