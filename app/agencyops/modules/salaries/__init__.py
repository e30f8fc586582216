"""
Salaries module.

Scope:
- Monthly salary records (one per employee and month) with server-side totals
- Stats rollup for the payroll dashboard
- Generate-from-work-reports: preview the month's hours, then create the record
"""
