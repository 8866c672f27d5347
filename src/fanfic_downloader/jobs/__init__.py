"""Job model, scheduler, artifact storage and execution."""
