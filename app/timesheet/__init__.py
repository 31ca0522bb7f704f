"""Pure timesheet normalization and payroll aggregation pipeline."""
