"""Discord UI components: the victim forgive/dislike prompt."""
