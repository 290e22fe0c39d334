"""Runtime primitives shared by every snipctl stage."""
