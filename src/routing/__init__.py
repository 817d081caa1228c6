"""Dynamic route registration and API document generation.

- **declarations**: Decoding a route module's ``route`` export
- **dispatch**: Late-bound router with retractable bindings
- **validation**: Request validators and the synthesized validation middleware
- **middleware**: Named global pre-handlers
- **plugins**: Plugin registration with dependency checks
- **document**: The live API document builder
- **registry**: ``RouteRegistry``, the single owner of all routing state
- **loader**: Discovery and import of route modules from disk
"""
