from pokedex.api_models import PokemonFilters
from pokedex.helpers import (
    capitalize_pokemon_name,
    create_pokedex_page_embed,
    describe_filters,
    sanitize_embed_content,
    truncate_text,
)
from pokedex.validators import (
    normalize_pokemon_name,
    validate_filters,
    validate_generation,
    validate_page,
    validate_pokemon_name,
)


class TestValidators:
    def test_normalize_name(self):
        assert normalize_pokemon_name("  Mr Mime ") == "mr-mime"
        assert normalize_pokemon_name("pika<script>chu") == "pikascriptchu"

    def test_validate_name(self):
        assert validate_pokemon_name("pikachu") == (True, None)
        assert validate_pokemon_name("")[0] is False
        assert validate_pokemon_name("x" * 51)[0] is False
        assert validate_pokemon_name("pika!chu")[0] is False

    def test_generation_aliases(self):
        assert validate_generation("4") == (True, None, "generation-iv")
        assert validate_generation("Gen9") == (True, None, "generation-ix")
        assert validate_generation("generation-ii") == (True, None, "generation-ii")
        assert validate_generation(None) == (True, None, None)
        assert validate_generation("10")[0] is False

    def test_validate_filters(self):
        is_valid, error, filters = validate_filters("Fire", "1", "final", "no")

        assert is_valid and error is None
        assert filters == PokemonFilters(
            type="fire", generation="generation-i", evolution="stage-2", legendary="standard"
        )

    def test_validate_filters_empty(self):
        is_valid, _, filters = validate_filters()

        assert is_valid
        assert not filters.is_active

    def test_validate_filters_rejects_unknown_values(self):
        assert validate_filters(type_name="cosmic")[0] is False
        assert validate_filters(evolution="stage-3")[0] is False
        assert validate_filters(legendary="maybe")[0] is False

    def test_validate_page(self):
        assert validate_page(1, 20) == (True, None)
        assert validate_page(0, 20)[0] is False
        assert validate_page(1, 26)[0] is False


class TestHelpers:
    def test_capitalize(self):
        assert capitalize_pokemon_name("landorus-therian") == "Landorus-Therian"
        assert capitalize_pokemon_name("mr-mime") == "Mr. Mime"

    def test_sanitize_blocks_mentions(self):
        assert sanitize_embed_content("@everyone") == "@\u200beveryone"
        assert sanitize_embed_content("*bold*") == "\\*bold\\*"

    def test_truncate(self):
        assert truncate_text("short", 10) == "short"
        assert len(truncate_text("word " * 100, 50)) <= 50

    def test_describe_filters(self):
        assert describe_filters(PokemonFilters()) is None
        assert (
            describe_filters(PokemonFilters(type="fire", legendary="legendary"))
            == "Type: Fire, Legendary"
        )

    def test_page_embed(self):
        payload = {
            "items": [
                {
                    "id": 25,
                    "formatted_id": "#0025",
                    "name": "pikachu",
                    "sprite": "https://img/25.png",
                    "types": ["electric"],
                    "generation": "generation-i",
                    "generation_label": "Generation I",
                    "is_legendary": False,
                    "evolution_stage": "stage-1",
                    "evolution_label": "First evolution",
                    "evolves_from": "pichu",
                }
            ],
            "total": 1,
            "page": 1,
            "page_size": 1,
            "total_pages": 1,
            "is_search": True,
            "filters_applied": False,
        }

        embed = create_pokedex_page_embed(payload, query="pikachu")

        assert embed.title == "Pokedex search: Pikachu"
        assert embed.fields[0].name == "#0025 Pikachu"
        assert "from Pichu" in embed.fields[0].value
        assert embed.footer.text == "Page 1/1"
