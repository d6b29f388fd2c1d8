"""Django project package for the hospitalization backend."""
