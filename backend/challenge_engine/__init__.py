"""PCN Challenge Engine - parking ticket challenge letter generation."""
