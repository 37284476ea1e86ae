"""Services for receiving, converting and delivering media."""
