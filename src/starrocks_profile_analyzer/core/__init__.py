"""Analysis entry point, batch pipeline and ambient services."""
