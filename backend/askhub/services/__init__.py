"""Domain services. Routes call these; none of them know about HTTP."""
