"""Work units run by the scheduler, one module per pipeline stage group."""
