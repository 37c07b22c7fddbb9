from __future__ import annotations

from conftest import make_product

from rewardwatch.models import Product, parse_products


def test_category_defaults_to_other() -> None:
    assert make_product("1").category == "Other"
    assert make_product("2", biType="").category == "Other"
    assert make_product("3", biType="Rouge").category == "Rouge"


def test_excluded_flag_matches_sentinel_subtype() -> None:
    assert make_product("1", rewardSubType="Experiential_notrigger").excluded is True
    assert make_product("2", rewardSubType="Sample").excluded is False


def test_missing_rewards_info_has_no_description() -> None:
    assert make_product("1").description is None
    assert make_product("2", rewardsInfo={}).description is None
    assert make_product("3", rewardsInfo="broken").description is None
    assert make_product("4", rewardsInfo={"description": "Deluxe set"}).description == "Deluxe set"


def test_image_url_prefixes_relative_paths() -> None:
    product = make_product("1", image="/productimages/sku/s1.jpg")
    assert product.image_url("https://www.sephora.com") == (
        "https://www.sephora.com/productimages/sku/s1.jpg"
    )
    assert make_product("2").image_url("https://www.sephora.com") is None


def test_points_are_coerced_and_default_to_zero() -> None:
    assert Product.model_validate({"productId": "1", "rewardPoints": "750"}).reward_points == 750
    assert Product.model_validate({"productId": "2"}).reward_points == 0
    assert Product.model_validate({"productId": "3", "rewardPoints": None}).reward_points == 0


def test_unusable_points_fall_back_instead_of_dropping_the_record() -> None:
    assert Product.model_validate({"productId": "1", "rewardPoints": 12.5}).reward_points == 12
    assert Product.model_validate({"productId": "2", "rewardPoints": "99.9"}).reward_points == 99
    assert Product.model_validate({"productId": "3", "rewardPoints": -5}).reward_points == 0
    assert Product.model_validate({"productId": "4", "rewardPoints": "lots"}).reward_points == 0


def test_odd_display_fields_do_not_reject_the_record() -> None:
    product = Product.model_validate(
        {"productId": "1", "productName": 42, "biType": ["Rouge"], "rewardsInfo": {"description": 7}}
    )

    assert product.product_name == "42"
    assert product.category == "Other"
    assert product.description is None


def test_parse_products_only_skips_records_without_identity() -> None:
    records = [
        {"productId": "1", "rewardPoints": 100},
        "not a product",
        {"productName": "No identity"},
        {"productId": "  "},
        {"productId": "2", "rewardPoints": -5},
        {"productId": "3", "rewardPoints": "lots"},
        {"productId": "4"},
    ]

    products = parse_products(records)

    assert [product.product_id for product in products] == ["1", "2", "3", "4"]


def test_unknown_fields_are_kept_on_the_model() -> None:
    product = Product.model_validate({"productId": "P1", "skuId": "2543"})

    assert product.model_extra == {"skuId": "2543"}
