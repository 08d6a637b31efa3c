"""Export layouts, sinks and outgoing email drafts."""
