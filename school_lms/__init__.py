"""Application package for the school LMS exam & grade backend."""
