"""RouteForge - dynamic route registration with a live API document.

RouteForge loads route modules from a directory at startup, binds them to a
late-bound dispatch router and keeps an OpenAPI document in step with every
registration, reload and removal.

Architecture Overview:
- **API Layer**: FastAPI service endpoints, middleware and the admin API
- **Core Layer**: Configuration, logging, tracing and the error hierarchy
- **Routing Layer**: Declarations, dispatch, plugins, validation and the
  document builder, all owned by a single ``RouteRegistry``

Key Features:
- **Hot reload**: Reloading or removing a route takes effect immediately
- **Plugins**: Named extensions with dependency checks
- **Validation**: Request schemas enforced before handlers run
- **Observability**: Structured logging and distributed tracing
"""
