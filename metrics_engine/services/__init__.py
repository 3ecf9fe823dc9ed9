"""Engine components; each takes its collaborators at construction."""
