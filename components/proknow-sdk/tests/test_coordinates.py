from proknow.coordinates import (
    remap_bounds,
    remap_dose_data,
    remap_image,
    remap_image_set_data,
)


class TestRemapBounds:
    def test_swaps_and_negates_y_and_z(self) -> None:
        rtv = {"min_x": 1.0, "max_x": 2.0, "min_y": -5.0, "max_y": 7.0, "min_z": 11.0, "max_z": 13.0}

        sdk = remap_bounds(rtv)

        assert (sdk["min_x"], sdk["max_x"]) == (1.0, 2.0)
        assert (sdk["min_y"], sdk["max_y"]) == (11.0, 13.0)
        assert (sdk["min_z"], sdk["max_z"]) == (-7.0, 5.0)
        assert sdk["min_z"] <= sdk["max_z"]

    def test_does_not_mutate_input(self) -> None:
        rtv = {"min_y": -5.0, "max_y": 7.0, "min_z": 11.0, "max_z": 13.0}

        remap_bounds(rtv)

        assert rtv == {"min_y": -5.0, "max_y": 7.0, "min_z": 11.0, "max_z": 13.0}


class TestRemapImageSet:
    def test_direction_cosines(self) -> None:
        rtv = {"u_x": 1.0, "u_y": 0.0, "u_z": 0.0, "v_x": 0.0, "v_y": 0.6, "v_z": 0.8}

        sdk = remap_image_set_data(rtv)

        assert (sdk["u_x"], sdk["u_y"], sdk["u_z"]) == (1.0, 0.0, 0.0)
        assert (sdk["v_x"], sdk["v_y"], sdk["v_z"]) == (0.0, 0.8, -0.6)

    def test_image_positions(self) -> None:
        image = {"id": "img-1", "pos": 12.5, "pos_x": -3.0, "pos_y": 4.0, "pos_z": 12.5}

        sdk = remap_image(image)

        assert (sdk["pos_x"], sdk["pos_y"], sdk["pos_z"]) == (-3.0, 12.5, -4.0)
        assert sdk["pos"] == 12.5
        assert sdk["id"] == "img-1"

    def test_magnitudes_swap_without_sign(self) -> None:
        rtv = {"spacing_x": 1.0, "spacing_y": 2.0, "spacing_z": 3.0, "size_y": 20.0, "size_z": 30.0}

        sdk = remap_image_set_data(rtv)

        assert (sdk["spacing_x"], sdk["spacing_y"], sdk["spacing_z"]) == (1.0, 3.0, 2.0)
        assert (sdk["size_y"], sdk["size_z"]) == (30.0, 20.0)

    def test_unprefixed_keys_pass_through(self) -> None:
        sdk = remap_image_set_data({"resolution_w": 100, "patient_position": "HFS"})

        assert sdk["resolution_w"] == 100
        assert sdk["patient_position"] == "HFS"
        assert "resolution_y" not in sdk


class TestRemapDose:
    def test_dose_slices_keep_scalar_position(self) -> None:
        rtv = {
            "min_y": -80.0,
            "max_y": 120.0,
            "min_z": -30.0,
            "max_z": 50.0,
            "resolution_y": 60,
            "resolution_z": 20,
            "uniform_y": True,
            "slices": [{"id": "s-1", "pos": -30.0}, {"id": "s-2", "pos": -27.5}],
        }

        sdk = remap_dose_data(rtv)

        assert (sdk["min_y"], sdk["max_y"], sdk["min_z"], sdk["max_z"]) == (-30.0, 50.0, -120.0, 80.0)
        assert (sdk["resolution_y"], sdk["resolution_z"]) == (20, 60)
        assert (sdk["uniform_y"], sdk["uniform_z"]) == (None, True)
        assert sdk["slices"] == rtv["slices"]
        assert sdk["slices"][0] is not rtv["slices"][0]
