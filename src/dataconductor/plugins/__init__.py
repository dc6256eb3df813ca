"""Node handler plugins: sources, processors and sinks, registered via pluggy."""
