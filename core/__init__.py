"""
Land Listing Moderation - Core Business Logic

The moderation pipeline lives in core.moderation:
1. Listing intake (always pending, never badged)
2. Trust-badge engine (evidence -> Gold / Silver / Bronze / None)
3. Listing state machine (admin review, owner resubmission)
4. Audit log (one entry per admin mutation)
5. Platform settings (validated, diffed, audited)
"""
