"""
Finance module.

Scope:
- Projects (per client), incoming payments (USD converted to BDT), expenses (BDT)
- Key/value finance settings, including the USD->BDT exchange rate
- Dashboard rollup (totals, monthly chart series, counts)
- Expense CSV export and two-phase (preview, then confirm) import
"""
