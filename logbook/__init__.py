"""Clinical logbook audio transcription backend."""
