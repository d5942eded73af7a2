"""Binary layouts and the PE header decode pipeline."""
