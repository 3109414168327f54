"""HTTP front end for the booking service."""
