# Copyright 2025 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# ==============================================================================

import random
import string
import time

_ID_ALPHABET = string.digits + string.ascii_lowercase


def get_unique_id(prefix: str = "", suffix_length: int = 9) -> str:
    """
    Returns an id made of the current epoch millis and a random base36 suffix.

    Ids are unique in practice but not cryptographically: two ids minted in
    the same millisecond collide with probability 36 ** -suffix_length.

    Args:
        prefix (str): Optional prefix, joined with an underscore (e.g. "proj").
        suffix_length (int): Number of random characters to append.

    Returns:
        str: An id such as "proj_1718000000000_k3j9x0a1b".
    """
    millis = int(time.time() * 1000)
    suffix = "".join(random.choices(_ID_ALPHABET, k=suffix_length))
    unique_id = f"{millis}_{suffix}"
    if prefix:
        return f"{prefix}_{unique_id}"
    return unique_id
