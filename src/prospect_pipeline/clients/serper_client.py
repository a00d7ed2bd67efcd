"""
Serper client for places and people search.

Implements PlacesProvider and PeopleProvider over the Serper HTTP API with
httpx. Responses are deduplicated through the ResultCache: identical
(normalised) queries within the TTL hit the cache instead of the network.

Error mapping:
- HTTP 429 -> ProviderRateLimitError (retried by the calling stage)
- HTTP 401/403/5xx, timeouts, transport errors -> ProviderUnavailableError
"""

import re
from typing import Any

import httpx

from ..cache import ResultCache, make_cache_key
from ..config import config
from ..errors import wrap_http_error
from ..logging import get_logger
from .providers import PersonResult, PlaceResult

logger = get_logger(__name__)

# Country name / alias -> Serper "gl" code
_COUNTRY_CODES = {
    'sa': 'sa', 'ksa': 'sa', 'saudi arabia': 'sa', 'kingdom of saudi arabia': 'sa',
    'south africa': 'za', 'za': 'za', 'rsa': 'za',
    'united arab emirates': 'ae', 'uae': 'ae',
    'qatar': 'qa', 'bahrain': 'bh', 'kuwait': 'kw', 'oman': 'om',
    'egypt': 'eg', 'jordan': 'jo', 'morocco': 'ma', 'turkey': 'tr',
    'india': 'in', 'united states': 'us', 'usa': 'us', 'us': 'us',
    'uk': 'gb', 'united kingdom': 'gb', 'canada': 'ca',
    'germany': 'de', 'france': 'fr', 'spain': 'es', 'italy': 'it',
    'australia': 'au', 'singapore': 'sg', 'nigeria': 'ng',
    'kenya': 'ke', 'ghana': 'gh', 'ethiopia': 'et',
}

_LINKEDIN_SUFFIX = re.compile(r'\s*\|\s*LinkedIn.*$', re.IGNORECASE)
_PERSON_NAME = re.compile(r'[A-Z][a-z]+\s+[A-Z][a-z]+')
_COMPANY_SUFFIXES = re.compile(
    r'\b(company|co|co ltd|co limited|limited|ltd|llc|inc|corp|corporation)\b', re.IGNORECASE
)


def country_code(country: str) -> str:
    """Map a country name or alias to a Serper gl code, defaulting to 'us'."""
    return _COUNTRY_CODES.get((country or '').strip().lower(), 'us')


def company_aliases(company: str) -> list[str]:
    """Distinct spellings of a company name for search queries, most specific first."""
    base = (company or '').strip()
    if not base:
        return []
    no_punct = re.sub(r'\s+', ' ', re.sub(r'[.,]', '', base)).strip()
    stripped = re.sub(r'\s+', ' ', _COMPANY_SUFFIXES.sub('', no_punct)).strip()
    tokens = stripped.split()
    short = ' '.join(tokens[:2]) if len(tokens) > 2 else stripped
    aliases: list[str] = []
    for alias in (base, no_punct, stripped, short):
        if alias and alias not in aliases:
            aliases.append(alias)
    return aliases


def parse_linkedin_result(item: dict[str, Any], company: str) -> PersonResult | None:
    """
    Extract a person from a search hit titled like
    "Name - Title - Company | LinkedIn".

    Returns None when no name and title can be recovered.
    """
    link = item.get('link') or ''
    if 'linkedin.com/in/' not in link:
        return None

    cleaned = _LINKEDIN_SUFFIX.sub('', item.get('title') or '')
    parts = [p.strip() for p in cleaned.split(' - ') if p.strip()]
    name = title = comp = ''

    if len(parts) >= 3:
        company_idx = next(
            (i for i, p in enumerate(parts) if company and company.lower() in p.lower()), -1
        )
        if company_idx >= 0:
            comp = parts[company_idx]
            remaining = [p for i, p in enumerate(parts) if i != company_idx]
            name_idx = next(
                (i for i, p in enumerate(remaining) if _PERSON_NAME.search(p)), 0
            )
            name = remaining[name_idx]
            title = ' - '.join(p for i, p in enumerate(remaining) if i != name_idx)
        else:
            name, title, comp = parts[0], ' - '.join(parts[1:-1]), parts[-1]
    elif len(parts) == 2:
        name, title = parts
        comp = company

    if not name or not title:
        return None
    return PersonResult(
        name=name,
        title=title,
        company=comp or company,
        linkedin=link,
        snippet=item.get('snippet') or '',
    )


class SerperClient:
    """
    Async Serper API client.

    Configuration via environment variables:
    - SERPER_API_KEY: Required API key
    - SERPER_BASE_URL: API base URL (default: https://google.serper.dev)
    """

    PROVIDER = 'serper'

    def __init__(
        self,
        api_key: str | None = None,
        cache: ResultCache | None = None,
        base_url: str | None = None,
        timeout: float = 8.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.api_key = api_key or config.SERPER_API_KEY
        if not self.api_key:
            raise ValueError('SERPER_API_KEY environment variable is required')
        self.cache = cache or ResultCache()
        self._client = http_client or httpx.AsyncClient(
            base_url=base_url or config.SERPER_BASE_URL,
            timeout=timeout,
            headers={'X-API-KEY': self.api_key, 'Content-Type': 'application/json'},
        )

    async def _post(self, endpoint: str, body: dict[str, Any]) -> dict[str, Any]:
        key = make_cache_key(self.PROVIDER, {'endpoint': endpoint, **body})

        async def fetch() -> dict[str, Any]:
            try:
                response = await self._client.post(endpoint, json=body)
                response.raise_for_status()
            except httpx.HTTPError as e:
                raise wrap_http_error(e, self.PROVIDER, {'endpoint': endpoint}) from e
            logger.debug('serper.fetched', endpoint=endpoint)
            return response.json()

        return await self.cache.remember(key, fetch)

    async def search_places(self, query: str, country: str, limit: int = 10) -> list[PlaceResult]:
        """Search businesses matching query in a country."""
        gl = country_code(country)
        data = await self._post('/places', {'q': query, 'gl': gl, 'num': min(max(limit, 10), 15)})

        results = []
        for place in (data.get('places') or [])[:limit]:
            address = place.get('address') or ''
            address_parts = [p.strip() for p in address.split(',') if p.strip()]
            results.append(
                PlaceResult(
                    name=place.get('title') or 'Unknown Business',
                    address=address,
                    phone=place.get('phoneNumber') or '',
                    website=place.get('website') or '',
                    rating=place.get('rating'),
                    city=address_parts[0] if len(address_parts) > 1 else country,
                    category=place.get('category') or '',
                )
            )
        logger.info('serper.places', query=query, gl=gl, count=len(results))
        return results

    async def search_people(
        self,
        company: str,
        country: str,
        limit: int = 10,
        titles: list[str] | None = None,
    ) -> list[PersonResult]:
        """
        Search LinkedIn profiles of people at a company.

        Falls back to a company-only query when the title-filtered query
        returns nothing.
        """
        gl = country_code(country)
        aliases = company_aliases(company)[:3]
        company_clause = '(' + ' OR '.join(f'"{a}"' for a in aliases) + ')' if aliases else f'"{company}"'
        title_clause = ''
        if titles:
            title_clause = '(' + ' OR '.join(f'"{t}"' for t in titles[:3] if t) + ')'

        query = f'site:linkedin.com/in {company_clause} {title_clause}'.strip()
        data = await self._post('/search', {'q': query, 'gl': gl, 'num': 10})
        items = data.get('organic') or []
        if not items and title_clause:
            data = await self._post(
                '/search', {'q': f'site:linkedin.com/in {company_clause}', 'gl': gl, 'num': 10}
            )
            items = data.get('organic') or []

        people = []
        for item in items:
            person = parse_linkedin_result(item, company)
            if person is not None:
                people.append(person)
            if len(people) >= limit:
                break
        logger.info('serper.people', company=company, gl=gl, count=len(people))
        return people

    async def close(self) -> None:
        await self._client.aclose()
