"""Pre-built mock service templates for exercising workflows without external dependencies."""
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _today() -> str:
    return datetime.now(timezone.utc).date().isoformat()


def _weather_service() -> Dict[str, Any]:
    return {
        "template_id": "weather_service_mock",
        "service_name": "Weather Service",
        "description": "Mock weather API with temperature, humidity and forecast data",
        "success_response": {
            "temperature": 72,
            "temperature_unit": "fahrenheit",
            "humidity": 65,
            "humidity_unit": "percent",
            "condition": "Sunny",
            "wind_speed": 8,
            "wind_direction": "NW",
            "location": {"city": "San Francisco", "state": "CA", "country": "USA"},
            "forecast": [
                {"day": "Monday", "high": 75, "low": 62, "condition": "Cloudy", "precipitation_chance": 20},
                {"day": "Tuesday", "high": 70, "low": 60, "condition": "Rainy", "precipitation_chance": 80},
                {"day": "Wednesday", "high": 73, "low": 61, "condition": "Partly Cloudy", "precipitation_chance": 30},
            ],
            "last_updated": _now_iso(),
        },
        "error_scenarios": [
            {
                "name": "Timeout",
                "probability": 0.1,
                "delay_ms": 35000,  # longer than the usual 30s service timeout
                "response": {"error": "Request timeout", "code": "TIMEOUT"},
            },
            {
                "name": "API Error",
                "probability": 0.05,
                "status_code": 500,
                "response": {
                    "error": "Internal server error",
                    "code": "SERVER_ERROR",
                    "message": "Weather service temporarily unavailable",
                },
            },
            {
                "name": "Invalid Location",
                "probability": 0.03,
                "status_code": 404,
                "response": {
                    "error": "Location not found",
                    "code": "LOCATION_NOT_FOUND",
                    "message": "The requested location could not be found",
                },
            },
        ],
    }


def _news_service() -> Dict[str, Any]:
    return {
        "template_id": "news_service_mock",
        "service_name": "News Service",
        "description": "Mock news API returning articles from various sources",
        "success_response": {
            "articles": [
                {
                    "article_id": "news_001",
                    "title": "Major AI Breakthrough Announced",
                    "source": "TechNews",
                    "author": "Jane Smith",
                    "date": _today(),
                    "category": "Technology",
                    "url": "https://technews.example.com/ai-breakthrough",
                },
                {
                    "article_id": "news_002",
                    "title": "Stock Markets Reach New Highs",
                    "source": "FinanceDaily",
                    "author": "John Doe",
                    "date": _today(),
                    "category": "Finance",
                    "url": "https://financedaily.example.com/market-highs",
                },
                {
                    "article_id": "news_003",
                    "title": "Climate Summit Produces New Commitments",
                    "source": "WorldNews",
                    "author": "Sarah Johnson",
                    "date": _today(),
                    "category": "Environment",
                    "url": "https://worldnews.example.com/climate-summit",
                },
            ],
            "total_articles": 3,
            "page": 1,
            "page_size": 10,
            "query": "latest",
            "generated_at": _now_iso(),
        },
        "error_scenarios": [
            {
                "name": "Rate Limited",
                "probability": 0.15,
                "status_code": 429,
                "response": {
                    "error": "Too many requests",
                    "code": "RATE_LIMIT_EXCEEDED",
                    "message": "API rate limit exceeded. Please try again later.",
                    "retry_after": 60,
                },
            },
            {
                "name": "Unauthorized",
                "probability": 0.02,
                "status_code": 401,
                "response": {
                    "error": "Unauthorized",
                    "code": "INVALID_API_KEY",
                    "message": "The provided API key is invalid or expired",
                },
            },
        ],
    }


def _document_generator() -> Dict[str, Any]:
    doc_id = f"doc_{int(time.time() * 1000)}"
    return {
        "template_id": "document_generator_mock",
        "service_name": "Document Generator",
        "description": "Mock document generation service that simulates PDF/DOCX creation",
        "success_response": {
            "document_id": doc_id,
            "document_name": "Generated_Document.pdf",
            "document_type": "PDF",
            "url": f"https://storage.example.com/documents/{doc_id}.pdf",
            "download_url": f"https://storage.example.com/documents/{doc_id}.pdf?download=true",
            "status": "generated",
            "page_count": 5,
            "file_size_bytes": 245760,
            "metadata": {
                "template_used": "business_report",
                "author": "System Generated",
                "created_date": _now_iso(),
                "version": "1.0",
            },
            "generated_at": _now_iso(),
            "expires_at": (datetime.now(timezone.utc) + timedelta(hours=24)).isoformat(),
        },
        "error_scenarios": [
            {
                "name": "Template Not Found",
                "probability": 0.05,
                "status_code": 404,
                "response": {
                    "error": "Template not found",
                    "code": "TEMPLATE_NOT_FOUND",
                    "message": "The requested document template does not exist",
                },
            },
            {
                "name": "Generation Failed",
                "probability": 0.08,
                "status_code": 500,
                "response": {
                    "error": "Document generation failed",
                    "code": "GENERATION_ERROR",
                    "message": "Failed to generate document due to internal error",
                },
            },
        ],
    }


def _data_validation() -> Dict[str, Any]:
    validation_id = f"val_{int(time.time() * 1000)}"
    return {
        "template_id": "data_validation_mock",
        "service_name": "Data Validator",
        "description": "Mock data validation service that checks data quality and integrity",
        "success_response": {
            "valid": True,
            "validation_id": validation_id,
            "issues": [],
            "warnings": [],
            "confidence": 0.95,
            "fields_validated": 12,
            "fields_passed": 12,
            "fields_failed": 0,
            "validation_details": [
                {"field": "email", "status": "valid", "message": "Email format is correct"},
                {"field": "phone", "status": "valid", "message": "Phone number format is valid"},
                {"field": "postal_code", "status": "valid", "message": "Postal code matches expected format"},
            ],
            "validated_at": _now_iso(),
        },
        "error_scenarios": [
            {
                "name": "Validation Failure",
                "probability": 0.2,
                "status_code": 200,  # a business failure, not an HTTP error
                "response": {
                    "valid": False,
                    "validation_id": validation_id,
                    "issues": [
                        {
                            "field": "email",
                            "severity": "error",
                            "message": "Email field is required but missing",
                            "code": "REQUIRED_FIELD_MISSING",
                        },
                        {
                            "field": "phone",
                            "severity": "error",
                            "message": "Phone number has invalid format",
                            "code": "INVALID_FORMAT",
                        },
                    ],
                    "warnings": [
                        {
                            "field": "address",
                            "severity": "warning",
                            "message": "Address could not be verified against postal database",
                            "code": "UNVERIFIED_ADDRESS",
                        },
                    ],
                    "confidence": 0.60,
                    "fields_validated": 12,
                    "fields_passed": 9,
                    "fields_failed": 3,
                    "validated_at": _now_iso(),
                },
            },
            {
                "name": "Service Unavailable",
                "probability": 0.05,
                "status_code": 503,
                "response": {
                    "error": "Service unavailable",
                    "code": "SERVICE_UNAVAILABLE",
                    "message": "Validation service is temporarily unavailable",
                },
            },
        ],
    }


# Builders run on every lookup so timestamps and generated ids are fresh
MOCK_SERVICE_TEMPLATES = {
    "weather_service_mock": _weather_service,
    "news_service_mock": _news_service,
    "document_generator_mock": _document_generator,
    "data_validation_mock": _data_validation,
}


def get_mock_service_template(template_id: str) -> Optional[Dict[str, Any]]:
    builder = MOCK_SERVICE_TEMPLATES.get(template_id)
    return builder() if builder else None


def get_mock_service_template_ids() -> List[str]:
    return list(MOCK_SERVICE_TEMPLATES.keys())


def get_mock_service_template_options() -> List[Dict[str, str]]:
    options = []
    for template_id in MOCK_SERVICE_TEMPLATES:
        template = get_mock_service_template(template_id)
        options.append({
            "value": template["template_id"],
            "label": template["service_name"],
            "description": template["description"],
        })
    return options
