"""
Metrics API Router - Exposes external API metrics and health status

Endpoints:
- GET /api/metrics - All API stats
- GET /api/metrics/service/{service} - Service-specific stats
- GET /api/metrics/errors - Recent errors
- GET /api/metrics/health - Overall health check
"""

from fastapi import APIRouter, HTTPException, Request

from infrastructure.api_metrics import APIMetricsTracker

router = APIRouter(prefix="/api/metrics", tags=["metrics"])


def _metrics(request: Request) -> APIMetricsTracker:
    return request.app.state.container.metrics


@router.get("")
async def get_all_metrics(request: Request):
    """
    Get metrics for all tracked services (near_rpc, near_faucet, ref_indexer, near_ai, supabase)
    """
    return _metrics(request).get_all_stats()


@router.get("/service/{service}")
async def get_service_metrics(service: str, request: Request):
    stats = _metrics(request).get_service_stats(service)
    if stats.get('status') == 'no_data':
        raise HTTPException(status_code=404, detail=f"No data for service: {service}")
    return stats


@router.get("/errors")
async def get_recent_errors(request: Request, limit: int = 20):
    errors = _metrics(request).get_recent_errors(limit)
    return {
        'count': len(errors),
        'errors': errors
    }


@router.get("/health")
async def health_check(request: Request):
    """
    Overall API health check
    """
    stats = _metrics(request).get_all_stats()

    health = "healthy"
    issues = []

    for name, data in stats['services'].items():
        if data.get('total_calls', 0) > 10:  # Only check if we have data
            success_rate = data.get('success_rate', 100)
            if success_rate < 80:
                health = "unhealthy"
                issues.append(f"{name}: {success_rate}% success rate")
            elif success_rate < 95:
                if health == "healthy":
                    health = "degraded"
                issues.append(f"{name}: {success_rate}% success rate")

    return {
        'status': health,
        'uptime': stats['uptime_human'],
        'total_calls': stats['total_api_calls'],
        'issues': issues
    }
