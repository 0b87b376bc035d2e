"""
Purchases App - Shared Meter Token Ledger

This app records bulk electricity token purchases for a shared prepaid meter,
the single contribution that settles each purchase, and standalone meter
readings taken between purchases.

Key Features:
- Token purchase recording with meter reading chronology checks
- Sequential settlement: contributions are accepted oldest purchase first
- Admin corrective entries that bypass the sequential order
- Standalone meter readings for balance projections
- Meter reading suggestions and tokens-consumed sanity checks

Architecture:
- Models: TokenPurchase, UserContribution, MeterReading
- Services: meter_validation, sequential_gate, purchase/contribution/reading management
- Views: RESTful API with ViewSets
- Permissions: admin-only edits of settled records
- Exceptions: domain exceptions in services/, HTTP exceptions in exceptions.py
"""

__version__ = '1.0.0'
