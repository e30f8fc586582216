"""Employees (payroll subjects); optionally linked to a login user for work-report hours."""
