"""
Seller earnings and payout reconciliation.

This app owns the money that sellers earn on the marketplace:
- Ledger of per-sale earnings and seller balances (escrow, available, paid)
- Scheduled escrow release
- Payout requests with atomic fund reservation
- Payout submission to PayPal Payouts
- Webhook reconciliation of payout outcomes
- Refund reversals and clawback debt
- Periodic balance invariant audit

Related apps:
    - core: base models, ServiceResult, exception hierarchy

Usage:
    from earnings.ledger import LedgerService
    from earnings.services import PayoutRequestService, PayoutProcessor

    earning = LedgerService.record_earning(
        seller=seller,
        order_id="ord_123",
        order_item_id="ord_123:1",
        gross_amount_cents=10000,
    )
    result = PayoutRequestService.request_payout(seller, amount_cents=5000)
"""
