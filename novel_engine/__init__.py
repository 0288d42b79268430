"""Generation orchestration engine for long-form novel jobs."""
