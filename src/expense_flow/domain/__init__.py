"""Pure decision core: validation, authorization and lifecycle rules."""
