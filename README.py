"""
Test-Pilot API

FastAPI backend for running API test flows: it renders the {{...}} templates
that steps use to pass data between each other, manages environments and
their variables, and proxies requests to the APIs under test.

Architecture Overview:
- Repository pattern for data access
- Dependency Injection for loose coupling
- Interface-based design for testability
- Template engine kept free of I/O (testpilot/template/)

Template syntax:
- {{res:alias.path}}        captured response of a step (JSONPath-like path)
- {{proc:alias.path}}       values derived by a processing step
- {{param:name}}            flow parameter
- {{env:NAME}}              environment variable
- {{func:name(args...)}}    function call, e.g. {{func:randomInt(1, 10)}}
- {{{...}}}                 keeps the raw type when it is the whole string

Usage:
1. Copy .env.example to .env and adjust settings if needed
2. Install dependencies: pip install -e ".[test]"
3. Run the application: python main.py (or python start.py)
4. Access API docs at: http://localhost:8000/api/v1/docs

API Endpoints:
- POST /api/v1/templates/render - Render a template against flow state
- POST /api/v1/templates/parse - Show the segments of a template string
- GET /api/v1/templates/functions - List template functions
- POST /api/v1/templates/outputs - Evaluate flow outputs
- POST /api/v1/templates/assertions - Check assertions against a step response
- POST /api/v1/environments/ - Create environment
- GET /api/v1/environments/ - List environments
- GET /api/v1/environments/{id} - Get environment by ID
- PUT /api/v1/environments/{id} - Update environment
- DELETE /api/v1/environments/{id} - Delete environment
- GET /api/v1/environments/{id}/resolve/{sub_environment} - Resolve variables
- POST /api/v1/proxy/request - Forward a request to the API under test
- GET /api/v1/health - Health check

Architecture Components:

1. Controllers (testpilot/api/routes/):
   - Handle HTTP requests and responses
   - Translate domain errors into HTTP status codes

2. Services (testpilot/services/):
   - Rendering, environment resolution, flow outputs, assertions, proxying

3. Repositories (testpilot/repositories/):
   - Data access layer behind interfaces

4. Models (testpilot/models/):
   - Pydantic schemas for request/response
   - SQLAlchemy models for database

5. Core (testpilot/core/):
   - Database configuration
   - Dependency injection

Environment Variables:
- DATABASE_URL: Database connection string
- STRICT_TEMPLATE_PREFIXES: Treat unknown {{prefix:...}} as an error
- PROXY_TIMEOUT_SECONDS: Timeout of proxied requests
- PROXY_ALLOW_INTERNAL_HOSTS: Allow the proxy to reach private networks
- LOG_LEVEL: Logging level (INFO, DEBUG, etc.)
"""
