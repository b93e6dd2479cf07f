"""Pure domain layer: value objects, voucher rules, validation and clock."""
