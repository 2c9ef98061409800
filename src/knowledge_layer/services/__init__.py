"""Service layer: the owned service context, vault sync and the agent tool facade."""
