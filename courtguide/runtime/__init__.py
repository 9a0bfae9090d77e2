"""Runtime control: device tiering, recovery, pipeline and worker."""
