"""Domain services: cart pricing, coupons, ledger and checkout."""
