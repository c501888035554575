"""Pure domain primitives: money, clock and workflow value types."""
